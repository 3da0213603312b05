# Preprocessing subpackage
"""
Preprocessing for the captioner.

Contains:
- vocab.py: Word-level Vocabulary (build, numericalize, save/load)
- captions.py: Caption file parsing, image-level split, sample flattening
"""

from .vocab import (
    Vocabulary,
    VocabularyNotBuiltError,
    build_vocabulary,
    tokenize,
    PAD_TOKEN,
    START_TOKEN,
    END_TOKEN,
    UNK_TOKEN,
)
from .captions import load_captions, split_by_image, materialize, all_captions

__all__ = [
    'Vocabulary',
    'VocabularyNotBuiltError',
    'build_vocabulary',
    'tokenize',
    'PAD_TOKEN',
    'START_TOKEN',
    'END_TOKEN',
    'UNK_TOKEN',
    'load_captions',
    'split_by_image',
    'materialize',
    'all_captions',
]
