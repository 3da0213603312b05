# Paths configuration for the captioner project
"""
Central path configuration.
Every CLI uses these as defaults; all of them can be overridden by flags.
The data root can also be moved with the CAPTIONER_DATA_DIR environment variable.
"""

import os

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Main directories
DATA_DIR = os.environ.get('CAPTIONER_DATA_DIR', os.path.join(PROJECT_ROOT, 'data'))
OUTPUTS_DIR = os.path.join(PROJECT_ROOT, 'outputs')

# Flickr-style dataset layout
IMAGE_DIR = os.path.join(DATA_DIR, 'Images')
CAPTIONS_PATH = os.path.join(DATA_DIR, 'captions.txt')

# Artifacts written by training
BEST_MODEL_PATH = os.path.join(OUTPUTS_DIR, 'best_model.pt')


def print_paths():
    """Print all configured paths for debugging."""
    print("=" * 70)
    print("Captioner Paths Configuration")
    print("=" * 70)
    print(f"PROJECT_ROOT:    {PROJECT_ROOT}")
    print(f"DATA_DIR:        {DATA_DIR}")
    print(f"IMAGE_DIR:       {IMAGE_DIR}")
    print(f"CAPTIONS_PATH:   {CAPTIONS_PATH}")
    print(f"OUTPUTS_DIR:     {OUTPUTS_DIR}")
    print(f"BEST_MODEL_PATH: {BEST_MODEL_PATH}")
    print("=" * 70)


if __name__ == '__main__':
    print_paths()
