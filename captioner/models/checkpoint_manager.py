"""
Checkpoint Manager - keep only the best model according to one metric.
The save directory holds:
- best_model.pt (model + optimizer state, config and vocabulary)
- metrics.json (metrics of the best epoch)
- history.json (metrics of every epoch, saved or not)
"""

import json
import os
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import torch

from ..config import CaptionConfig
from ..preprocessing.vocab import Vocabulary
from .decoder import CaptioningModel, create_model

LOWER_IS_BETTER = {'val_loss', 'train_loss'}
HIGHER_IS_BETTER = {'bleu1', 'bleu2', 'bleu3', 'bleu4', 'rouge_l'}


class CheckpointManager:
    """
    Saves a checkpoint only when the tracked metric strictly improves.

    Args:
        save_dir: Directory for best_model.pt, metrics.json and history.json
        criterion: Metric to compare (lower-is-better for losses, higher for BLEU/ROUGE)
        resume: Keep best metrics/history already on disk instead of starting fresh
    """

    def __init__(self, save_dir: str, criterion: str = 'val_loss', resume: bool = False):
        if criterion not in LOWER_IS_BETTER | HIGHER_IS_BETTER:
            raise ValueError(f"Unknown criterion: {criterion}")

        self.save_dir = save_dir
        self.criterion = criterion
        os.makedirs(save_dir, exist_ok=True)

        self.best_model_path = os.path.join(save_dir, "best_model.pt")
        self.metrics_path = os.path.join(save_dir, "metrics.json")
        self.history_path = os.path.join(save_dir, "history.json")

        self.best_metrics: Optional[Dict[str, Any]] = self._load_json(self.metrics_path) if resume else None
        self.history: list = (self._load_json(self.history_path) or []) if resume else []

    @staticmethod
    def _load_json(path: str):
        if os.path.exists(path):
            with open(path, 'r') as f:
                return json.load(f)
        return None

    def _dump_json(self, path: str, payload):
        with open(path, 'w') as f:
            json.dump(payload, f, indent=4)

    def is_better(self, metrics: Dict[str, Any]) -> bool:
        """Strict comparison; ties are not an improvement."""
        if self.criterion not in metrics:
            raise KeyError(f"Criterion '{self.criterion}' not found in metrics")
        if self.best_metrics is None:
            return True

        new_value = metrics[self.criterion]
        best_value = self.best_metrics[self.criterion]
        if self.criterion in LOWER_IS_BETTER:
            return new_value < best_value
        return new_value > best_value

    def save_if_best(
        self,
        model: torch.nn.Module,
        metrics: Dict[str, Any],
        epoch: int,
        vocab: Vocabulary,
        config: CaptionConfig,
        optimizer: Optional[torch.optim.Optimizer] = None
    ) -> bool:
        """
        Record metrics for this epoch and write best_model.pt if they improve.

        Returns:
            True if the checkpoint was written
        """
        current = {
            **metrics,
            'epoch': epoch,
            'timestamp': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        }

        self.history.append(current)
        self._dump_json(self.history_path, self.history)

        if not self.is_better(current):
            print(f"   {self.criterion}: {current[self.criterion]:.4f} "
                  f"(best: {self.best_metrics[self.criterion]:.4f}) - not saved")
            return False

        checkpoint = {
            'epoch': epoch,
            'model_state_dict': model.state_dict(),
            'config': config.to_dict(),
            'vocab': vocab.to_dict(),
            'metrics': current,
        }
        if optimizer is not None:
            checkpoint['optimizer_state_dict'] = optimizer.state_dict()
        torch.save(checkpoint, self.best_model_path)

        self.best_metrics = current
        self._dump_json(self.metrics_path, current)
        print(f"  ★ New best {self.criterion}: {current[self.criterion]:.4f} "
              f"(epoch {epoch}) -> {self.best_model_path}")
        return True

    def print_summary(self):
        print(f"\n{'=' * 60}")
        print("Checkpoint summary")
        print(f"{'=' * 60}")
        print(f"  Save directory: {self.save_dir}")
        print(f"  Epochs recorded: {len(self.history)}")
        if self.best_metrics:
            print(f"  Best epoch: {self.best_metrics['epoch']}")
            print(f"  Best {self.criterion}: {self.best_metrics[self.criterion]:.4f}")
        else:
            print("  No checkpoint saved yet")
        print(f"{'=' * 60}\n")


def load_checkpoint(
    checkpoint_path: str,
    device: str = 'cpu',
    backbone: Optional[torch.nn.Module] = None,
    feature_dim: int = 2048
) -> Tuple[CaptioningModel, Vocabulary, CaptionConfig]:
    """
    Rebuild model, vocabulary and config from a checkpoint written by CheckpointManager.

    The extractor backbone is created without downloading pretrained weights,
    since the checkpoint already contains them. Pass `backbone`/`feature_dim`
    if the model was trained with a non-default backbone.
    """
    checkpoint = torch.load(checkpoint_path, map_location=device, weights_only=False)

    config = CaptionConfig.from_dict(checkpoint.get('config'))
    vocab = Vocabulary.from_dict(checkpoint['vocab'])

    model = create_model(
        len(vocab), config, pad_id=vocab.pad_id,
        backbone=backbone, feature_dim=feature_dim, pretrained=False
    )
    model.load_state_dict(checkpoint['model_state_dict'])
    model.to(device)
    model.eval()

    print(f"✓ Loaded model from {checkpoint_path} (epoch {checkpoint.get('epoch', '?')})")
    return model, vocab, config
