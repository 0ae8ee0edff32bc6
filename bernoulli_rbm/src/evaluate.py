"""Reconstruction quality metrics."""
import logging
import math
from typing import NamedTuple, Optional

import mlflow as mlf
import torch

from ..constants import DTYPE, ERROR_PIXEL_THRESHOLD, MSE_EXCELLENT, MSE_GOOD
from .model import BernoulliRBM

logger = logging.getLogger(__name__)


class ErrorMetrics(NamedTuple):
    mse: float
    error_percent: float
    pixels_different: int
    pixels_different_percent: float


def reconstruction_error(original, reconstruction, threshold: float = ERROR_PIXEL_THRESHOLD) -> ErrorMetrics:
    """Compare a sample with its reconstruction, unit by unit."""
    original = torch.as_tensor(original, dtype=DTYPE)
    reconstruction = torch.as_tensor(reconstruction, dtype=DTYPE)
    if original.shape != reconstruction.shape:
        raise ValueError(f"Shape mismatch: {tuple(original.shape)} vs {tuple(reconstruction.shape)}")
    if original.numel() == 0:
        raise ValueError("Cannot compare empty vectors")

    diff = original - reconstruction
    mse = float((diff ** 2).mean())
    different = int((diff.abs() > threshold).sum())
    return ErrorMetrics(
        mse=mse,
        error_percent=math.sqrt(mse) * 100,
        pixels_different=different,
        pixels_different_percent=different / original.numel() * 100,
    )


def mse_category(mse: float) -> str:
    if mse < MSE_EXCELLENT:
        return "excellent"
    if mse <= MSE_GOOD:
        return "good"
    return "poor"


def evaluate_reconstruction(rbm: BernoulliRBM, samples, max_samples: Optional[int] = None) -> float:
    """Mean per-sample RMSE of the model's mean-field reconstruction."""
    samples = torch.as_tensor(samples, dtype=DTYPE)
    if samples.dim() == 1:
        samples = samples.unsqueeze(0)
    if max_samples is not None:
        samples = samples[:max_samples]
    if samples.shape[0] == 0:
        raise ValueError("No samples to evaluate")

    _, reconstruction = rbm.reconstruct(samples)
    per_sample = ((samples - reconstruction) ** 2).mean(dim=1).sqrt()
    return float(per_sample.mean())


def evaluate_and_log(rbm: BernoulliRBM, samples, epoch: int, total_epochs: int,
                     max_samples: Optional[int] = None, use_mlflow: bool = False) -> float:
    """Evaluate model and log metrics for current epoch."""
    rmse = evaluate_reconstruction(rbm, samples, max_samples)
    logger.info(f"Epoch {epoch:02d}/{total_epochs} | Reconstruction RMSE: {rmse:.4f}")

    if use_mlflow and mlf.active_run():
        mlf.log_metrics({"reconstruction_rmse": rmse}, step=epoch)
    return rmse
