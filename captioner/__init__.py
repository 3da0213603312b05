# captioner package - CNN feature extractor + LSTM caption decoder
"""
Image captioning with a frozen CNN encoder and an LSTM decoder.

This package contains:
- preprocessing/: Vocabulary building, caption file parsing, train/val split
- models/: Feature extractor, LSTM decoder, dataset, collate, training,
  inference, evaluation and checkpoint management
- config.py: CaptionConfig hyperparameters
- paths.py: Default file locations
"""

from .config import CaptionConfig

__version__ = "0.1.0"

__all__ = ['CaptionConfig', '__version__']
