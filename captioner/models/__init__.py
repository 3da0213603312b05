# Models Package - CNN-LSTM captioner and supporting modules
"""
Models subpackage for the captioner

Contains:
- encoder.py: FeatureExtractor (frozen ResNet-50 + adapter) and image transforms
- decoder.py: LSTMDecoder, DecoderState machine, CaptioningModel, caption_loss
- dataloader.py: CaptionDataset and DataLoader construction
- collate.py: Padding collate function with per-sample lengths
- train.py: Training / validation loop
- inference.py: Greedy decoding and CaptionGenerator
- evaluate_metrics.py: BLEU/ROUGE metric evaluation
- checkpoint_manager.py: Best-checkpoint management and loading
- report.py: Training curve plots
"""

from .encoder import FeatureExtractor, build_transform
from .decoder import (
    CaptioningModel,
    DecodePhase,
    DecoderState,
    LSTMDecoder,
    caption_loss,
    create_model,
)
from .collate import CaptionCollate
from .dataloader import CaptionDataset, build_loaders
from .checkpoint_manager import CheckpointManager, load_checkpoint
from .inference import CaptionGenerator, greedy_decode, greedy_decode_ids

__all__ = [
    'FeatureExtractor',
    'build_transform',
    'CaptioningModel',
    'DecodePhase',
    'DecoderState',
    'LSTMDecoder',
    'caption_loss',
    'create_model',
    'CaptionCollate',
    'CaptionDataset',
    'build_loaders',
    'CheckpointManager',
    'load_checkpoint',
    'CaptionGenerator',
    'greedy_decode',
    'greedy_decode_ids',
]
