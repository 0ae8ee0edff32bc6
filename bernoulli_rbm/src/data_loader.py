"""Sample collection loading and validation."""
import logging
import os
from typing import Optional

import numpy as np
import pandas as pd
import torch

from ..constants import DTYPE
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def as_sample_tensor(samples, n_visible: Optional[int] = None) -> torch.Tensor:
    """
    Copy a collection of samples into a (n_samples, n_visible) tensor.

    Accepts a tensor, numpy array, DataFrame or a sequence of equal-length
    vectors. The result never aliases the caller's data.

    Raises:
        ConfigurationError: If the collection is empty, ragged, has the wrong
            width, or holds values outside [0, 1].
    """
    if isinstance(samples, pd.DataFrame):
        samples = samples.to_numpy()
    try:
        if isinstance(samples, (list, tuple)) and samples and isinstance(samples[0], torch.Tensor):
            samples = torch.stack([torch.as_tensor(s, dtype=DTYPE) for s in samples])
        data = torch.as_tensor(np.asarray(samples) if not isinstance(samples, torch.Tensor) else samples,
                               dtype=DTYPE).clone()
    except (TypeError, ValueError, RuntimeError) as e:
        raise ConfigurationError(f"Samples must be equal-length numeric vectors: {e}") from e

    if data.dim() == 1:
        data = data.unsqueeze(0)
    if data.dim() != 2 or data.numel() == 0:
        raise ConfigurationError(f"Expected a non-empty 2-D sample collection, got shape {tuple(data.shape)}")
    if n_visible is not None and data.shape[1] != n_visible:
        raise ConfigurationError(f"Samples have {data.shape[1]} values but the model has {n_visible} visible units")
    if not torch.isfinite(data).all() or (data < 0).any() or (data > 1).any():
        raise ConfigurationError("Sample values must be finite and lie in [0, 1]")
    return data


def load_samples(path: str, n_visible: Optional[int] = None) -> torch.Tensor:
    """
    Load a sample collection from disk.

    Supported formats: ``.npy``, ``.npz`` (first array), ``.csv`` (one sample
    per row, no header).
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Sample file not found: {path}")

    extension = os.path.splitext(path)[1].lower()
    if extension == ".npy":
        raw = np.load(path)
    elif extension == ".npz":
        with np.load(path) as archive:
            if not archive.files:
                raise ConfigurationError(f"No arrays found in {path}")
            raw = archive[archive.files[0]]
    elif extension == ".csv":
        raw = pd.read_csv(path, header=None).to_numpy()
    else:
        raise ConfigurationError(f"Unsupported sample file format: {extension or path}")

    samples = as_sample_tensor(raw, n_visible)
    logger.info(f"Loaded {samples.shape[0]} samples of size {samples.shape[1]} from {path}")
    return samples
