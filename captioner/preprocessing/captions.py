"""
Caption file parsing and image-level train/val splitting.

Caption file format (Flickr8k token file):
    header line (skipped)
    <image_id>#<n>\t<caption text>
"""

import random
from typing import Dict, Iterable, List, TextIO, Tuple, Union

CaptionMap = Dict[str, List[str]]


def _read_lines(source: Union[str, TextIO, Iterable[str]]) -> List[str]:
    if isinstance(source, str):
        with open(source, 'r', encoding='utf-8') as f:
            return f.read().splitlines()
    return [line.rstrip('\r\n') for line in source]


def load_captions(source: Union[str, TextIO, Iterable[str]]) -> CaptionMap:
    """
    Group captions by image id.

    Args:
        source: Path to the caption file, an open file, or an iterable of lines

    Returns:
        Ordered dict image_id -> captions in file order. The `#n` caption index
        suffix is stripped before grouping; lines that do not split into
        exactly two tab-separated fields are skipped.
    """
    mapping: CaptionMap = {}
    skipped = 0

    for line in _read_lines(source)[1:]:
        fields = line.split('\t')
        if len(fields) != 2:
            skipped += 1
            continue
        image_id, caption = fields
        image_id = image_id.split('#')[0].strip()
        mapping.setdefault(image_id, []).append(caption.strip())

    if skipped:
        print(f"⚠ Skipped {skipped} malformed caption records")
    return mapping


def split_by_image(
    mapping: CaptionMap,
    val_ratio: float = 0.1,
    seed: int = 42
) -> Tuple[CaptionMap, CaptionMap]:
    """
    Partition by image so all captions of one image land in the same split.

    floor(num_images * val_ratio) images go to validation.
    """
    if not 0.0 <= val_ratio < 1.0:
        raise ValueError(f"val_ratio must be in [0, 1), got {val_ratio}")

    image_ids = list(mapping)
    random.Random(seed).shuffle(image_ids)

    num_val = int(len(image_ids) * val_ratio)
    val_ids = set(image_ids[:num_val])

    train = {k: v for k, v in mapping.items() if k not in val_ids}
    val = {k: v for k, v in mapping.items() if k in val_ids}
    return train, val


def materialize(mapping: CaptionMap) -> List[Tuple[str, str]]:
    """One (image_id, caption) row per caption, in mapping order."""
    return [(image_id, caption) for image_id, captions in mapping.items() for caption in captions]


def all_captions(mapping: CaptionMap) -> List[str]:
    return [caption for captions in mapping.values() for caption in captions]
