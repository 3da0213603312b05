"""
Hyperparameters for the captioning pipeline.

A single CaptionConfig is built once per run (defaults, then CLI overrides) and
handed to every component that needs it. It is stored inside each checkpoint
so inference can rebuild the exact same model.
"""

from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional

import torch


@dataclass
class CaptionConfig:
    # Model architecture
    embed_dim: int = 256
    hidden_dim: int = 256
    num_layers: int = 1
    dropout: float = 0.5
    image_size: int = 224
    pretrained_extractor: bool = True
    train_extractor: bool = False

    # Vocabulary / data
    freq_threshold: int = 5
    val_ratio: float = 0.1
    max_decode_length: int = 50
    num_workers: int = 2

    # Training hyperparameters
    batch_size: int = 32
    learning_rate: float = 3e-4
    weight_decay: float = 0.0
    epochs: int = 100
    grad_clip: Optional[float] = 5.0
    label_smoothing: float = 0.0
    patience: int = 0            # Early stopping patience (0 = disabled)
    use_amp: bool = False

    # Runtime
    seed: int = 42
    device: str = 'cuda'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> 'CaptionConfig':
        """Build a config from a dict, ignoring keys this version doesn't know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (values or {}).items() if k in known})

    def updated(self, **overrides) -> 'CaptionConfig':
        """Copy with non-None overrides applied (argparse leaves unset flags as None)."""
        values = self.to_dict()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CaptionConfig.from_dict(values)

    def resolve_device(self) -> torch.device:
        if self.device.startswith('cuda') and not torch.cuda.is_available():
            print("CUDA not available, falling back to CPU")
            return torch.device('cpu')
        return torch.device(self.device)
