import os

import pytest
import torch
import torch.nn as nn
from PIL import Image

from captioner.config import CaptionConfig
from captioner.models.decoder import create_model
from captioner.preprocessing.vocab import Vocabulary

TINY_FEATURE_DIM = 8

CAPTION_LINES = [
    "image\tcaption",
    "img1.jpg#0\tA dog runs on the grass .",
    "img1.jpg#1\tA brown dog is running .",
    "img2.jpg#0\tA cat sits on a mat .",
    "img2.jpg#1\tThe cat is sleeping .",
    "img3.jpg#0\tTwo children play in the park .",
    "img4.jpg#0\tA man rides a bike .",
    "img4.jpg#1\tA man on a bike on the road .",
]


def tiny_backbone() -> nn.Module:
    """Stand-in for ResNet-50: (B, 3, H, W) -> (B, TINY_FEATURE_DIM), no downloads."""
    return nn.Sequential(
        nn.AdaptiveAvgPool2d(1),
        nn.Flatten(),
        nn.Linear(3, TINY_FEATURE_DIM),
    )


@pytest.fixture
def config():
    return CaptionConfig(
        embed_dim=16,
        hidden_dim=32,
        num_layers=1,
        dropout=0.0,
        image_size=32,
        pretrained_extractor=False,
        freq_threshold=1,
        val_ratio=0.5,
        max_decode_length=10,
        num_workers=0,
        batch_size=2,
        epochs=2,
        learning_rate=1e-2,
        device='cpu',
    )


@pytest.fixture
def vocab():
    captions = [line.split('\t')[1] for line in CAPTION_LINES[1:]]
    return Vocabulary(freq_threshold=1).build(captions)


@pytest.fixture
def model(vocab, config):
    torch.manual_seed(0)
    return create_model(
        len(vocab), config, pad_id=vocab.pad_id,
        backbone=tiny_backbone(), feature_dim=TINY_FEATURE_DIM
    )


@pytest.fixture
def flickr_dir(tmp_path):
    """Caption file plus one small generated image per image id."""
    img_dir = tmp_path / "Images"
    img_dir.mkdir()
    colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (128, 128, 0)]
    for i, color in enumerate(colors, start=1):
        Image.new('RGB', (40, 48), color).save(img_dir / f"img{i}.jpg")

    captions_path = tmp_path / "captions.txt"
    captions_path.write_text("\n".join(CAPTION_LINES) + "\n", encoding='utf-8')
    return str(captions_path), str(img_dir)
