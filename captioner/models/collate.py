import torch
from torch.nn.utils.rnn import pad_sequence


class CaptionCollate:
    """
    Collate function for (image, caption_ids) samples.

    Kept as a class (not a closure) so DataLoader worker processes can pickle it.

    Returns:
        images: (B, 3, H, W)
        captions: (B, L) left-aligned ids, right-padded with pad_id,
            L = longest caption in this batch
        lengths: (B,) true caption lengths
    """

    def __init__(self, pad_id: int = 0):
        self.pad_id = pad_id

    def __call__(self, batch):
        images = torch.stack([b[0] for b in batch])
        captions = [b[1] for b in batch]

        lengths = torch.tensor([len(c) for c in captions], dtype=torch.long)
        padded = pad_sequence(captions, batch_first=True, padding_value=self.pad_id)

        return images, padded, lengths
