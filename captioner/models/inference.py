"""
Inference for the CNN + LSTM captioner
======================================
Features:
    - Greedy decoding through the decoder's step-wise state machine
    - Single image or whole-folder captioning
    - Results optionally written to JSON

Usage:
    python -m captioner.models.inference --image path/to/image.jpg
    python -m captioner.models.inference --image_folder path/to/images --output captions.json
"""

import argparse
import json
import os
from typing import List, Optional, Tuple, Union

import torch
from PIL import Image

from .. import paths
from ..preprocessing.vocab import Vocabulary
from .checkpoint_manager import load_checkpoint
from .decoder import CaptioningModel, DecodePhase, DecoderState
from .encoder import build_transform

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.bmp', '.tiff')


@torch.no_grad()
def greedy_decode_ids(
    model: CaptioningModel,
    image: torch.Tensor,
    vocab: Vocabulary,
    max_length: int
) -> List[int]:
    """
    Greedy decoding for one image.

    Args:
        model: Trained captioning model
        image: (3, H, W) or (1, 3, H, W) preprocessed image
        vocab: Built vocabulary (fails fast if it is not)
        max_length: Maximum number of generated tokens

    Returns:
        Generated ids starting with <start>, at most max_length + 1 long,
        ending with <end> if generation stopped early
    """
    start_id, end_id = vocab.start_id, vocab.end_id

    model.eval()
    if image.dim() == 3:
        image = image.unsqueeze(0)
    device = next(model.parameters()).device
    image = image.to(device)

    image_embedding = model.extractor.embed(image)     # (1, embed_dim), computed once
    state = DecoderState.initial()
    generated = [start_id]

    for _ in range(max_length):
        token = torch.tensor([generated[-1]], dtype=torch.long, device=device)
        if state.phase is DecodePhase.AWAIT_FIRST_STEP:
            logits, state = model.decoder.step(state, token, image_embedding)
        else:
            logits, state = model.decoder.step(state, token)

        # argmax returns the lowest id on ties
        next_id = int(logits.argmax(dim=-1).item())
        generated.append(next_id)
        if next_id == end_id:
            break

    return generated


def greedy_decode(
    model: CaptioningModel,
    image: torch.Tensor,
    vocab: Vocabulary,
    max_length: int
) -> List[str]:
    """Greedy caption as a list of words (<start>/<end> stripped)."""
    return vocab.decode(greedy_decode_ids(model, image, vocab, max_length))


class CaptionGenerator:
    """
    Caption generator around a trained model.

    Handles:
        - Image preprocessing (deterministic transform)
        - Greedy caption generation
        - Text decoding
    """

    def __init__(
        self,
        model: CaptioningModel,
        vocab: Vocabulary,
        max_length: int = 50,
        image_size: int = 224
    ):
        self.model = model
        self.vocab = vocab
        self.max_length = max_length
        self.transform = build_transform(image_size, train=False)
        self.model.eval()

    @classmethod
    def from_checkpoint(cls, checkpoint_path: str, device: str = 'cuda') -> 'CaptionGenerator':
        if device.startswith('cuda') and not torch.cuda.is_available():
            device = 'cpu'
        model, vocab, config = load_checkpoint(checkpoint_path, device=device)
        return cls(model, vocab, max_length=config.max_decode_length, image_size=config.image_size)

    def preprocess(self, image: Union[str, Image.Image]) -> torch.Tensor:
        """Path or PIL image -> (1, 3, H, W) tensor."""
        if isinstance(image, str):
            with Image.open(image) as img:
                return self.transform(img.convert('RGB')).unsqueeze(0)
        return self.transform(image.convert('RGB')).unsqueeze(0)

    def generate(
        self,
        image: Union[str, Image.Image, torch.Tensor],
        max_length: Optional[int] = None
    ) -> Tuple[str, List[int]]:
        """
        Generate caption for image.

        Returns:
            Tuple of (caption_text, token_ids)
        """
        if not isinstance(image, torch.Tensor):
            image = self.preprocess(image)
        max_length = self.max_length if max_length is None else max_length

        token_ids = greedy_decode_ids(self.model, image, self.vocab, max_length)
        caption = ' '.join(self.vocab.decode(token_ids))
        return caption, token_ids

    def caption_folder(self, folder: str) -> dict:
        results = {}
        for name in sorted(os.listdir(folder)):
            if name.lower().endswith(IMAGE_EXTENSIONS):
                caption, _ = self.generate(os.path.join(folder, name))
                results[name] = caption
                print(f"  {name}: {caption}")
        return results


def main():
    parser = argparse.ArgumentParser(description='Generate captions with a trained CNN-LSTM model')
    parser.add_argument('--checkpoint', type=str, default=paths.BEST_MODEL_PATH,
                        help='Path to best_model.pt')
    parser.add_argument('--image', type=str, default=None,
                        help='Single image to caption')
    parser.add_argument('--image_folder', type=str, default=None,
                        help='Caption every image in this folder')
    parser.add_argument('--max_length', type=int, default=None,
                        help='Maximum generated tokens (default: from checkpoint config)')
    parser.add_argument('--output', type=str, default=None,
                        help='Write {image: caption} JSON here')
    parser.add_argument('--device', type=str, default='cuda',
                        choices=['cuda', 'cpu', 'mps'])
    args = parser.parse_args()

    if not args.image and not args.image_folder:
        parser.error("one of --image or --image_folder is required")

    generator = CaptionGenerator.from_checkpoint(args.checkpoint, device=args.device)
    if args.max_length is not None:
        generator.max_length = args.max_length

    if args.image:
        caption, _ = generator.generate(args.image)
        print(f"\n{os.path.basename(args.image)}: {caption}")
        results = {os.path.basename(args.image): caption}
    else:
        print(f"\nCaptioning images in {args.image_folder}...")
        results = generator.caption_folder(args.image_folder)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(results, f, indent=2)
        print(f"\n✓ Saved captions to {args.output}")


if __name__ == '__main__':
    main()
