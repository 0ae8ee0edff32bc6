import logging
import os
import random as _random
from typing import Dict, List, Optional, Sequence

import matplotlib
import numpy as np
import torch

from ..constants import DEFAULT_FIGURE_SIZE, SEED, SIGMOID_CLAMP

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def sigmoid(x: torch.Tensor) -> torch.Tensor:
    """Logistic function with the argument clamped to [-20, 20] before exponentiation."""
    return torch.sigmoid(torch.clamp(x, -SIGMOID_CLAMP, SIGMOID_CLAMP))


def binary_sample(probabilities: torch.Tensor,
                  generator: Optional[torch.Generator] = None) -> torch.Tensor:
    """Draw an independent 0/1 value per component, 1 with the given probability."""
    return torch.bernoulli(probabilities, generator=generator)


def make_generator(seed: Optional[int] = None) -> torch.Generator:
    """Create a CPU random source, seeded when a seed is given."""
    generator = torch.Generator()
    if seed is None:
        generator.seed()
    else:
        generator.manual_seed(seed)
    return generator


def set_seed(seed: int = SEED) -> None:
    """Set global random seeds for reproducibility."""
    _random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def plot_training_metrics(reconstruction_errors: Sequence[float],
                          energy_history: Optional[Sequence[float]] = None,
                          output_path: str = "out/training_metrics.png",
                          title: str = "RBM Training Metrics") -> str:
    """Save per-epoch reconstruction error (and optionally an energy trace) to a PNG.

    Returns:
        str: Path of the written figure.
    """
    n_panels = 2 if energy_history else 1
    fig, axes = plt.subplots(n_panels, 1, figsize=DEFAULT_FIGURE_SIZE, squeeze=False)

    ax = axes[0][0]
    ax.plot(range(1, len(reconstruction_errors) + 1), reconstruction_errors, marker="o",
            label="Reconstruction RMSE")
    ax.set_xlabel("Epoch")
    ax.set_ylabel("RMSE")
    ax.set_title(title)
    ax.legend()
    ax.grid(True)

    if energy_history:
        ax = axes[1][0]
        ax.plot(energy_history, label="Energy")
        ax.set_xlabel("Sample")
        ax.set_ylabel("Energy")
        ax.legend()
        ax.grid(True)

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)
    logger.info(f"Training metrics plot saved to {output_path}")
    return output_path


def summarize_history(history: Dict[str, List[float]]) -> Dict[str, float]:
    """Last value of every non-empty metric series."""
    return {key: values[-1] for key, values in history.items() if values}
