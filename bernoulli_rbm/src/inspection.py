"""
Read-only views of the learned filters.

Every function here returns new tensors and leaves the model untouched. None
of them is safe to call while a training run holds the model.
"""
import torch

from ..constants import CONTRIBUTION_MIN_ACTIVATION, DTYPE, FILTER_FLAT_RANGE, OVERLAY_STRENGTH
from .model import BernoulliRBM


def _check_unit(rbm: BernoulliRBM, unit: int) -> int:
    if not 0 <= unit < rbm.n_hidden:
        raise IndexError(f"Hidden unit {unit} out of range for {rbm.n_hidden} hidden units")
    return unit


def hidden_filter(rbm: BernoulliRBM, unit: int) -> torch.Tensor:
    """Raw weight row of one hidden unit."""
    return rbm.W[_check_unit(rbm, unit)].detach().clone()


def normalized_filter(rbm: BernoulliRBM, unit: int) -> torch.Tensor:
    """Weight row scaled into [-1, 1] by its largest magnitude."""
    row = hidden_filter(rbm, unit)
    peak = row.abs().max()
    if peak == 0:
        return torch.zeros_like(row)
    return row / peak


def filter_grid(rbm: BernoulliRBM) -> torch.Tensor:
    """All filters, each row min-max scaled to [0, 1]. Flat rows become 0.5."""
    weights = rbm.W.detach()
    low = weights.min(dim=1, keepdim=True).values
    high = weights.max(dim=1, keepdim=True).values
    spread = high - low
    flat = spread <= FILTER_FLAT_RANGE
    scaled = (weights - low) / torch.where(flat, torch.ones_like(spread), spread)
    return torch.where(flat, torch.full_like(weights, 0.5), scaled)


def neuron_contribution(rbm: BernoulliRBM, unit: int, activation: float) -> torch.Tensor:
    """
    How strongly each visible unit is driven by one hidden unit.

    ``|w * activation|`` normalized by its maximum. A unit that is barely on
    (activation at most 0.01) contributes nothing.
    """
    row = hidden_filter(rbm, unit)
    if activation <= CONTRIBUTION_MIN_ACTIVATION:
        return torch.zeros_like(row)
    contribution = (row * activation).abs()
    peak = contribution.max()
    if peak > 0:
        contribution = contribution / peak
    return contribution


def filter_overlay(sample, weights, activation: float, strength: float = OVERLAY_STRENGTH) -> torch.Tensor:
    """Sample with a hidden unit's filter blended in, clamped to [-1, 1]."""
    sample = torch.as_tensor(sample, dtype=DTYPE)
    weights = torch.as_tensor(weights, dtype=DTYPE)
    if sample.shape != weights.shape:
        raise ValueError(f"Shape mismatch: sample {tuple(sample.shape)} vs filter {tuple(weights.shape)}")
    return (sample + weights * activation * strength).clamp(-1.0, 1.0)
