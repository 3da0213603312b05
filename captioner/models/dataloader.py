import os
from typing import Callable, List, Optional, Sequence, Tuple

import torch
from PIL import Image
from torch.utils.data import DataLoader, Dataset

from ..config import CaptionConfig
from ..preprocessing.captions import CaptionMap, materialize
from ..preprocessing.vocab import Vocabulary
from .collate import CaptionCollate
from .encoder import build_transform


class CaptionDataset(Dataset):
    def __init__(
        self,
        samples: Sequence[Tuple[str, str]],
        img_folder: str,
        vocab: Vocabulary,
        transform: Optional[Callable] = None
    ):
        """
        Args:
            samples: Ordered (image_id, caption) pairs; index i always maps to samples[i].
            img_folder: Folder containing the images.
            vocab: Built Vocabulary used to numericalize captions.
            transform: Image preprocessing (deterministic resize + normalize if omitted).
        """
        self.samples: List[Tuple[str, str]] = list(samples)
        self.img_folder = img_folder
        self.vocab = vocab
        self.transform = transform if transform is not None else build_transform()

    @classmethod
    def from_mapping(cls, mapping: CaptionMap, img_folder: str, vocab: Vocabulary,
                     transform: Optional[Callable] = None) -> 'CaptionDataset':
        return cls(materialize(mapping), img_folder, vocab, transform)

    def __len__(self):
        return len(self.samples)

    def __getitem__(self, idx):
        img_name, caption = self.samples[idx]

        # A missing or unreadable image is fatal for this sample; the caller decides
        img_path = os.path.join(self.img_folder, img_name)
        with Image.open(img_path) as img:
            image = self.transform(img.convert('RGB'))

        return image, self.vocab.encode(caption)


def build_loaders(
    train_mapping: CaptionMap,
    val_mapping: CaptionMap,
    img_folder: str,
    vocab: Vocabulary,
    config: CaptionConfig
) -> Tuple[DataLoader, DataLoader]:
    """Train loader (shuffled, augmented) and val loader (ordered, deterministic)."""
    train_dataset = CaptionDataset.from_mapping(
        train_mapping, img_folder, vocab, build_transform(config.image_size, train=True)
    )
    val_dataset = CaptionDataset.from_mapping(
        val_mapping, img_folder, vocab, build_transform(config.image_size, train=False)
    )

    collate = CaptionCollate(pad_id=vocab.pad_id)
    workers = dict(
        num_workers=config.num_workers,
        pin_memory=torch.cuda.is_available(),
        persistent_workers=config.num_workers > 0,
        prefetch_factor=2 if config.num_workers > 0 else None
    )

    train_loader = DataLoader(
        train_dataset,
        batch_size=config.batch_size,
        shuffle=True,
        collate_fn=collate,
        **workers
    )
    val_loader = DataLoader(
        val_dataset,
        batch_size=config.batch_size,
        shuffle=False,
        collate_fn=collate,
        **workers
    )
    return train_loader, val_loader
