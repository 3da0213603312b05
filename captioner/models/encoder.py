"""
Feature Extractor
=================
Pretrained ResNet-50 backbone (frozen by default) followed by a trainable
linear adapter that maps the pooled 2048-dim features to the decoder's
embedding size.

Gradient tracking through the backbone is a capability flag (`trainable`),
not a property of the module type: with trainable=False the backbone runs
under torch.no_grad() and stays in eval mode even while the rest of the model
trains.
"""

from typing import Optional

import torch
import torch.nn as nn
from torchvision import models, transforms

# ImageNet statistics expected by the pretrained backbone
IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]


def build_transform(image_size: int = 224, train: bool = False) -> transforms.Compose:
    """Preprocessing the backbone expects. Train adds a random crop and flip."""
    if train:
        return transforms.Compose([
            transforms.Resize((image_size + 32, image_size + 32)),
            transforms.RandomCrop((image_size, image_size)),
            transforms.RandomHorizontalFlip(p=0.5),
            transforms.ToTensor(),
            transforms.Normalize(mean=IMAGENET_MEAN, std=IMAGENET_STD),
        ])
    return transforms.Compose([
        transforms.Resize((image_size, image_size)),
        transforms.ToTensor(),
        transforms.Normalize(mean=IMAGENET_MEAN, std=IMAGENET_STD),
    ])


def resnet50_backbone(pretrained: bool = True) -> nn.Module:
    """ResNet-50 with the classification head removed -> (B, 2048)."""
    weights = models.ResNet50_Weights.IMAGENET1K_V2 if pretrained else None
    resnet = models.resnet50(weights=weights)
    resnet.fc = nn.Identity()
    return resnet


class FeatureExtractor(nn.Module):
    """
    Image -> fixed-length embedding.

    Args:
        embed_dim: Output embedding dimension (matches decoder word embeddings)
        trainable: Whether gradients flow into the backbone
        pretrained: Load ImageNet weights for the default backbone
        backbone: Optional replacement backbone returning (B, feature_dim)
        feature_dim: Output size of `backbone` (2048 for the default)
        dropout: Dropout on the adapter output
    """

    def __init__(
        self,
        embed_dim: int = 256,
        trainable: bool = False,
        pretrained: bool = True,
        backbone: Optional[nn.Module] = None,
        feature_dim: int = 2048,
        dropout: float = 0.5
    ):
        super().__init__()
        self.backbone = backbone if backbone is not None else resnet50_backbone(pretrained)
        self.adapter = nn.Linear(feature_dim, embed_dim)
        self.relu = nn.ReLU()
        self.dropout = nn.Dropout(dropout)
        self.embed_dim = embed_dim
        self.trainable = trainable

    @property
    def trainable(self) -> bool:
        return self._trainable

    @trainable.setter
    def trainable(self, value: bool):
        self._trainable = bool(value)
        for param in self.backbone.parameters():
            param.requires_grad = self._trainable
        if not self._trainable:
            self.backbone.eval()

    def train(self, mode: bool = True):
        super().train(mode)
        # A frozen backbone keeps its BatchNorm statistics fixed
        if not self._trainable:
            self.backbone.eval()
        return self

    def embed(self, images: torch.Tensor) -> torch.Tensor:
        """
        Args:
            images: (batch_size, 3, H, W) normalized images

        Returns:
            embeddings: (batch_size, embed_dim)
        """
        if self._trainable:
            features = self.backbone(images)
        else:
            with torch.no_grad():
                features = self.backbone(images)
        features = features.flatten(1)
        return self.dropout(self.relu(self.adapter(features)))

    def forward(self, images: torch.Tensor) -> torch.Tensor:
        return self.embed(images)
