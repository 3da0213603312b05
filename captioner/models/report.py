"""Training report plots."""

import os
from typing import Optional, Sequence

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np


def plot_training_curves(
    train_losses: Sequence[float],
    val_losses: Sequence[float],
    save_dir: str,
    saved_epochs: Optional[Sequence[int]] = None
) -> str:
    """
    Loss and per-token perplexity curves.

    Epochs that wrote best_model.pt (1-based, from `saved_epochs`) are marked
    on the validation curve. Returns the saved image path.
    """
    saved_epochs = [e for e in (saved_epochs or []) if 1 <= e <= len(val_losses)]
    epochs = np.arange(1, len(train_losses) + 1)

    fig, (loss_ax, ppl_ax) = plt.subplots(1, 2, figsize=(14, 5))

    loss_ax.plot(epochs, train_losses, 'b-', label='Train loss', linewidth=2)
    loss_ax.plot(epochs, val_losses, 'r-', label='Val loss', linewidth=2)
    if saved_epochs:
        loss_ax.scatter(saved_epochs, [val_losses[e - 1] for e in saved_epochs],
                        marker='*', s=160, color='green', zorder=5,
                        label='Checkpoint written')
    loss_ax.set_xlabel('Epoch')
    loss_ax.set_ylabel('Masked cross-entropy')
    loss_ax.set_title('Caption loss (pad positions ignored)')
    loss_ax.grid(alpha=0.3)
    loss_ax.legend()

    # Mean per-token loss -> perplexity over the caption vocabulary
    ppl_ax.plot(epochs, np.exp(train_losses), 'b--', label='Train perplexity')
    ppl_ax.plot(epochs, np.exp(val_losses), 'r--', label='Val perplexity')
    ppl_ax.set_yscale('log')
    ppl_ax.set_xlabel('Epoch')
    ppl_ax.set_ylabel('Perplexity')
    ppl_ax.set_title('Next-token perplexity')
    ppl_ax.grid(alpha=0.3, which='both')
    ppl_ax.legend()

    plt.tight_layout()
    out_path = os.path.join(save_dir, 'training_curves.png')
    plt.savefig(out_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    if saved_epochs:
        best = saved_epochs[-1]
        print(f"✓ Saved: training_curves.png (last checkpoint at epoch {best}, "
              f"val loss {val_losses[best - 1]:.4f})")
    else:
        print("✓ Saved: training_curves.png")
    return out_path
