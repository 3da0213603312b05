"""
Evaluate BLEU and ROUGE metrics for a trained captioning model.
Each validation image gets one greedy caption, scored against all of its
reference captions.
"""

import argparse
import json
import os
from typing import Dict, List, Optional

import numpy as np
import torch
from nltk.translate.bleu_score import SmoothingFunction, corpus_bleu
from PIL import Image
from rouge_score import rouge_scorer
from tqdm import tqdm

from .. import paths
from ..preprocessing.captions import CaptionMap, load_captions, split_by_image
from ..preprocessing.vocab import Vocabulary, tokenize
from .checkpoint_manager import load_checkpoint
from .decoder import CaptioningModel
from .encoder import build_transform
from .inference import greedy_decode

BLEU_WEIGHTS = {
    'bleu1': (1.0, 0, 0, 0),
    'bleu2': (0.5, 0.5, 0, 0),
    'bleu3': (1 / 3, 1 / 3, 1 / 3, 0),
    'bleu4': (0.25, 0.25, 0.25, 0.25),
}


def calculate_bleu_scores(references: List[List[List[str]]], hypotheses: List[List[str]]) -> Dict[str, float]:
    """
    Corpus-level BLEU-1..4.

    Args:
        references: Per hypothesis, a list of tokenized reference captions
        hypotheses: Tokenized predicted captions
    """
    smoothing = SmoothingFunction().method1
    return {
        name: float(corpus_bleu(references, hypotheses, weights=weights, smoothing_function=smoothing))
        for name, weights in BLEU_WEIGHTS.items()
    }


def calculate_rouge_scores(references: List[List[str]], hypotheses: List[str]) -> Dict[str, float]:
    """
    ROUGE-L F1, best match over each hypothesis' references.

    Args:
        references: Per hypothesis, a list of reference caption strings
        hypotheses: Predicted caption strings
    """
    scorer = rouge_scorer.RougeScorer(['rougeL'], use_stemmer=True)

    scores = []
    for refs, hyp in zip(references, hypotheses):
        scores.append(max(scorer.score(ref, hyp)['rougeL'].fmeasure for ref in refs))

    return {
        'rouge_l': float(np.mean(scores)),
        'rouge_l_std': float(np.std(scores)),
    }


def evaluate_model(
    model: CaptioningModel,
    mapping: CaptionMap,
    img_folder: str,
    vocab: Vocabulary,
    max_length: int = 50,
    image_size: int = 224,
    num_samples: int = -1
) -> Dict:
    """
    Generate a caption for every image in `mapping` and score it.

    Returns:
        {'metrics': {...}, 'predictions': {image_id: caption}}
    """
    transform = build_transform(image_size, train=False)
    image_ids = list(mapping)
    if num_samples > 0:
        image_ids = image_ids[:num_samples]

    references, hypotheses = [], []
    ref_strings, hyp_strings = [], []
    predictions = {}

    for image_id in tqdm(image_ids, desc="Generating"):
        with Image.open(os.path.join(img_folder, image_id)) as img:
            image = transform(img.convert('RGB'))

        words = greedy_decode(model, image, vocab, max_length)
        caption = ' '.join(words)
        predictions[image_id] = caption

        references.append([tokenize(c) for c in mapping[image_id]])
        hypotheses.append(words)
        ref_strings.append(mapping[image_id])
        hyp_strings.append(caption)

    metrics = calculate_bleu_scores(references, hypotheses)
    metrics.update(calculate_rouge_scores(ref_strings, hyp_strings))
    return {'metrics': metrics, 'predictions': predictions}


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(description='Evaluate BLEU/ROUGE metrics')
    parser.add_argument('--checkpoint', type=str, default=paths.BEST_MODEL_PATH,
                        help='Path to model checkpoint')
    parser.add_argument('--captions', type=str, default=paths.CAPTIONS_PATH,
                        help='Caption file used for training')
    parser.add_argument('--img_folder', type=str, default=paths.IMAGE_DIR,
                        help='Path to images folder')
    parser.add_argument('--split', type=str, default='val', choices=['val', 'all'],
                        help='Images to evaluate (val = same split as training)')
    parser.add_argument('--num_samples', type=int, default=-1,
                        help='Number of images to evaluate (-1 for all)')
    parser.add_argument('--save_predictions', type=str, default=None,
                        help='Write metrics and predictions to this JSON file')
    parser.add_argument('--device', type=str, default='cuda',
                        choices=['cuda', 'cpu', 'mps'])
    args = parser.parse_args(argv)

    device = args.device
    if device == 'cuda' and not torch.cuda.is_available():
        print("CUDA not available, falling back to CPU")
        device = 'cpu'

    model, vocab, config = load_checkpoint(args.checkpoint, device=device)

    mapping = load_captions(args.captions)
    if args.split == 'val':
        _, mapping = split_by_image(mapping, config.val_ratio, config.seed)

    results = evaluate_model(
        model, mapping, args.img_folder, vocab,
        max_length=config.max_decode_length,
        image_size=config.image_size,
        num_samples=args.num_samples
    )

    print("\n" + "=" * 60)
    print(f"Evaluation on {len(results['predictions'])} images ({args.split})")
    print("=" * 60)
    for name, value in results['metrics'].items():
        print(f"  {name}: {value:.4f}")
    print("=" * 60)

    if args.save_predictions:
        with open(args.save_predictions, 'w') as f:
            json.dump(results, f, indent=2)
        print(f"✓ Saved predictions to {args.save_predictions}")


if __name__ == '__main__':
    main()
