"""
Training Script for the CNN + LSTM Image Captioning Model
=========================================================
Features:
    - Teacher forcing with the image embedding as the first time step
    - Cross-entropy over non-pad positions only
    - Optional mixed precision (CUDA) and gradient clipping
    - Best-checkpoint saving on strictly lower validation loss
    - Optional early stopping with patience
    - Loss history (JSON) and training curves (PNG)

Usage:
    python -m captioner.models.train --captions data/captions.txt --img_folder data/Images
"""

import argparse
import json
import os
import random
import time
from typing import Optional

import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from torch.amp import GradScaler, autocast
from torch.utils.data import DataLoader
from tqdm import tqdm

from .. import paths
from ..config import CaptionConfig
from ..preprocessing.captions import all_captions, load_captions, split_by_image
from ..preprocessing.vocab import Vocabulary, build_vocabulary
from .checkpoint_manager import CheckpointManager
from .dataloader import build_loaders
from .decoder import CaptioningModel, caption_loss, create_model
from .report import plot_training_curves


def set_seed(seed: int):
    """Seed every RNG the training run touches."""
    torch.manual_seed(seed)
    np.random.seed(seed)
    random.seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


class Trainer:
    """
    Training manager for the CNN-LSTM captioner.
    """

    def __init__(
        self,
        model: CaptioningModel,
        train_loader: DataLoader,
        val_loader: DataLoader,
        config: CaptionConfig,
        vocab: Vocabulary,
        output_dir: str = paths.OUTPUTS_DIR
    ):
        if len(val_loader) == 0:
            raise ValueError("Validation loader is empty; increase val_ratio or add data")

        self.device = config.resolve_device()
        self.model = model.to(self.device)
        self.train_loader = train_loader
        self.val_loader = val_loader
        self.config = config
        self.vocab = vocab
        self.output_dir = output_dir

        os.makedirs(output_dir, exist_ok=True)

        # Loss function (ignore padding)
        self.criterion = nn.CrossEntropyLoss(
            ignore_index=vocab.pad_id,
            label_smoothing=config.label_smoothing
        )

        # Frozen backbone parameters have requires_grad=False and are left out
        self.optimizer = optim.Adam(
            [p for p in model.parameters() if p.requires_grad],
            lr=config.learning_rate,
            weight_decay=config.weight_decay
        )

        self.use_amp = config.use_amp and self.device.type == 'cuda'
        self.scaler = GradScaler('cuda', enabled=self.use_amp)

        self.checkpoints = CheckpointManager(output_dir, criterion='val_loss')

        # Tracking
        self.current_epoch = 0
        self.patience_counter = 0
        self.train_losses = []
        self.val_losses = []
        self.saved_epochs = []
        self._stop_requested = False

    def request_stop(self):
        """
        Stop the running train() at the next batch boundary.

        The interrupted epoch is not validated or checkpointed. The request is
        cleared once train() returns, so the trainer can be started again.
        """
        self._stop_requested = True

    def _batch_loss(self, images, captions):
        images = images.to(self.device, non_blocking=True)
        captions = captions.to(self.device, non_blocking=True)
        with autocast(device_type=self.device.type, enabled=self.use_amp):
            logits = self.model(images, captions)
            return caption_loss(logits, captions, self.criterion)

    def train_epoch(self) -> float:
        """
        Train for one epoch.

        Returns:
            Mean of the per-batch mean losses
        """
        self.model.train()
        total_loss = 0.0
        num_batches = 0
        num_tokens = 0

        pbar = tqdm(self.train_loader, desc=f"Epoch {self.current_epoch + 1}")

        for images, captions, lengths in pbar:
            if self._stop_requested:
                print("\n⚠ Stop requested, ending epoch early")
                break

            self.optimizer.zero_grad()
            loss = self._batch_loss(images, captions)

            self.scaler.scale(loss).backward()
            if self.config.grad_clip:
                self.scaler.unscale_(self.optimizer)
                nn.utils.clip_grad_norm_(self.model.parameters(), self.config.grad_clip)
            self.scaler.step(self.optimizer)
            self.scaler.update()

            total_loss += loss.item()
            num_batches += 1
            # Scored targets per caption: everything after <start>
            num_tokens += int((lengths - 1).sum())

            pbar.set_postfix({
                'loss': f"{total_loss / num_batches:.4f}",
                'tokens': num_tokens
            })

        return total_loss / max(num_batches, 1)

    @torch.no_grad()
    def validate(self) -> float:
        """
        Loss-only pass over the validation set; no parameter updates.

        Returns:
            Mean of the per-batch mean losses
        """
        self.model.eval()
        total_loss = 0.0
        num_batches = 0

        for images, captions, _ in tqdm(self.val_loader, desc="Validating"):
            loss = self._batch_loss(images, captions)
            total_loss += loss.item()
            num_batches += 1

        return total_loss / num_batches

    def train(self):
        """
        Full training loop.
        """
        print("\n" + "=" * 60)
        print("Starting Training")
        print("=" * 60)
        print(f"  Device: {self.device}")
        print(f"  Batch size: {self.config.batch_size}")
        print(f"  Learning rate: {self.config.learning_rate}")
        print(f"  Epochs: {self.config.epochs}")
        print(f"  Early stopping patience: {self.config.patience or 'off'}")
        print(f"  Mixed precision: {self.use_amp}")
        print(f"  Output dir: {self.output_dir}")
        print("=" * 60 + "\n")

        start_time = time.time()

        for epoch in range(self.current_epoch, self.config.epochs):
            self.current_epoch = epoch
            epoch_start = time.time()

            train_loss = self.train_epoch()
            if self._stop_requested:
                print(f"\n⚠ Training stopped during epoch {epoch + 1}")
                break
            val_loss = self.validate()

            self.train_losses.append(train_loss)
            self.val_losses.append(val_loss)

            epoch_time = time.time() - epoch_start
            print(f"\nEpoch {epoch + 1}/{self.config.epochs} ({epoch_time:.1f}s)")
            print(f"  Train Loss: {train_loss:.4f}")
            print(f"  Val Loss: {val_loss:.4f}")

            is_best = self.checkpoints.save_if_best(
                self.model,
                {'train_loss': train_loss, 'val_loss': val_loss},
                epoch=epoch + 1,
                vocab=self.vocab,
                config=self.config,
                optimizer=self.optimizer
            )

            if is_best:
                self.saved_epochs.append(epoch + 1)
                self.patience_counter = 0
            else:
                self.patience_counter += 1
                if self.config.patience:
                    print(f"  Patience: {self.patience_counter}/{self.config.patience}")

            if self.config.patience and self.patience_counter >= self.config.patience:
                print(f"\n⚠ Early stopping triggered at epoch {epoch + 1}")
                break

        total_time = time.time() - start_time
        print("\n" + "=" * 60)
        print("Training Complete!")
        print("=" * 60)
        print(f"  Total time: {total_time / 60:.1f} minutes")
        if self.val_losses:
            print(f"  Best val loss: {min(self.val_losses):.4f}")
        print("=" * 60)

        self._stop_requested = False
        self.save_history()

    def save_history(self):
        history = {
            'train_losses': self.train_losses,
            'val_losses': self.val_losses,
            'saved_epochs': self.saved_epochs,
            'config': self.config.to_dict()
        }
        with open(os.path.join(self.output_dir, 'training_history.json'), 'w') as f:
            json.dump(history, f, indent=2)

        if self.val_losses:
            plot_training_curves(self.train_losses, self.val_losses, self.output_dir,
                                 saved_epochs=self.saved_epochs)


def main(argv: Optional[list] = None):
    """Main training function."""
    defaults = CaptionConfig()
    parser = argparse.ArgumentParser(description='Train CNN-LSTM Captioner')

    # Data paths
    parser.add_argument('--captions', type=str, default=paths.CAPTIONS_PATH,
                        help='Caption file (<image>#<n>\\t<caption> per line, header first)')
    parser.add_argument('--img_folder', type=str, default=paths.IMAGE_DIR,
                        help='Path to image folder')
    parser.add_argument('--output_dir', type=str, default=paths.OUTPUTS_DIR,
                        help='Output directory for checkpoints, vocab and history')

    # Hyperparameters (unset flags keep CaptionConfig defaults)
    parser.add_argument('--embed_dim', type=int, help=f'default {defaults.embed_dim}')
    parser.add_argument('--hidden_dim', type=int, help=f'default {defaults.hidden_dim}')
    parser.add_argument('--num_layers', type=int, help=f'default {defaults.num_layers}')
    parser.add_argument('--lr', dest='learning_rate', type=float, help=f'default {defaults.learning_rate}')
    parser.add_argument('--batch_size', type=int, help=f'default {defaults.batch_size}')
    parser.add_argument('--epochs', type=int, help=f'default {defaults.epochs}')
    parser.add_argument('--freq_threshold', type=int, help=f'default {defaults.freq_threshold}')
    parser.add_argument('--val_ratio', type=float, help=f'default {defaults.val_ratio}')
    parser.add_argument('--max_decode_length', type=int, help=f'default {defaults.max_decode_length}')
    parser.add_argument('--num_workers', type=int, help=f'default {defaults.num_workers}')
    parser.add_argument('--patience', type=int, help=f'default {defaults.patience} (off)')
    parser.add_argument('--seed', type=int, help=f'default {defaults.seed}')
    parser.add_argument('--image_size', type=int, help=f'default {defaults.image_size}')
    parser.add_argument('--train_extractor', action='store_true', default=None,
                        help='Fine-tune the CNN backbone too')
    parser.add_argument('--no_pretrained', dest='pretrained_extractor', action='store_false', default=None,
                        help='Start the CNN backbone from random weights (no ImageNet download)')
    parser.add_argument('--use_amp', action='store_true', default=None,
                        help='Mixed precision on CUDA')

    # Device
    parser.add_argument('--device', type=str, default=None,
                        choices=['cuda', 'cpu', 'mps'])

    args = vars(parser.parse_args(argv))
    captions_path = args.pop('captions')
    img_folder = args.pop('img_folder')
    output_dir = args.pop('output_dir')
    config = defaults.updated(**args)

    set_seed(config.seed)

    print("Loading captions...")
    mapping = load_captions(captions_path)
    train_mapping, val_mapping = split_by_image(mapping, config.val_ratio, config.seed)
    print(f"  Images: {len(mapping)} (train {len(train_mapping)}, val {len(val_mapping)})")

    # Vocabulary from training captions only
    print("\nBuilding vocabulary...")
    vocab = build_vocabulary(
        all_captions(train_mapping),
        config.freq_threshold,
        save_path=os.path.join(output_dir, 'vocab.pkl')
    )

    train_loader, val_loader = build_loaders(train_mapping, val_mapping, img_folder, vocab, config)
    print(f"  Train samples: {len(train_loader.dataset)}")
    print(f"  Val samples: {len(val_loader.dataset)}")

    print("\nCreating model...")
    model = create_model(len(vocab), config, pad_id=vocab.pad_id)

    trainer = Trainer(
        model=model,
        train_loader=train_loader,
        val_loader=val_loader,
        config=config,
        vocab=vocab,
        output_dir=output_dir
    )
    trainer.train()
    trainer.checkpoints.print_summary()


if __name__ == '__main__':
    main()
