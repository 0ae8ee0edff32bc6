"""
Equilibrium-sampling training.

Approximates the two-phase Boltzmann learning rule: the positive phase is the
exact data-driven statistic over the batch, the negative phase comes from one
long binary Gibbs chain run close to the model's stationary distribution.
Cost per batch is O((burn_in + sampling_steps) * n_hidden * n_visible), so the
method is restricted to a small sample count and a few epochs.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

import torch

from ..config import EquilibriumSettings
from .model import BernoulliRBM, TrainingMethod
from .strategy import TrainingStrategy

logger = logging.getLogger(__name__)


class PhaseStatistics(NamedTuple):
    weights: torch.Tensor
    hidden: torch.Tensor
    visible: torch.Tensor


def positive_phase(rbm: BernoulliRBM, batch: torch.Tensor) -> PhaseStatistics:
    """Batch averages of p(h|v)⊗v, p(h|v) and v. No sampling noise."""
    p_h = rbm.mean_field_hidden(batch)
    n = batch.shape[0]
    return PhaseStatistics(p_h.t() @ batch / n, p_h.mean(0), batch.mean(0))


def negative_phase(rbm: BernoulliRBM,
                   start: torch.Tensor,
                   burn_in_steps: int,
                   sampling_steps: int,
                   energy_every: int = 0,
                   energy_trace: Optional[List[float]] = None) -> PhaseStatistics:
    """
    Model statistics from a single binary Gibbs chain.

    Args:
        rbm (BernoulliRBM): Model to sample from
        start (torch.Tensor): Visible vector the chain starts from (not modified)
        burn_in_steps (int): Discarded sweeps; energy is logged every
            ``energy_every`` of them for convergence tracking
        sampling_steps (int): Sweeps whose h⊗v, h and v are averaged
        energy_every (int): Burn-in energy logging interval, 0 to disable
        energy_trace (list, optional): Receives the logged burn-in energies

    Returns:
        PhaseStatistics: averages over the sampling sweeps, all in [0, 1]
    """
    if sampling_steps <= 0:
        raise ValueError(f"sampling_steps must be positive, got {sampling_steps}")

    burn_in = rbm.gibbs_chain(start, burn_in_steps, energy_every=energy_every)
    for step, energy in enumerate(burn_in.energies, start=1):
        logger.debug(f"Burn-in energy [{step}]: {energy:.4f}")
    if energy_trace is not None:
        energy_trace.extend(burn_in.energies)

    visible = burn_in.visible
    weights = torch.zeros_like(rbm.W)
    hidden_sum = torch.zeros_like(rbm.h_bias)
    visible_sum = torch.zeros_like(rbm.v_bias)
    for _ in range(sampling_steps):
        hidden = rbm.binary_hidden(visible)
        weights += torch.outer(hidden, visible)
        hidden_sum += hidden
        visible_sum += visible
        visible = rbm.binary_visible(hidden)

    return PhaseStatistics(weights / sampling_steps, hidden_sum / sampling_steps, visible_sum / sampling_steps)


class EquilibriumTrainer(TrainingStrategy):
    method = TrainingMethod.EQUILIBRIUM

    def __init__(self, rbm: BernoulliRBM, settings: Optional[EquilibriumSettings] = None) -> None:
        super().__init__(rbm)
        self.settings = settings or EquilibriumSettings()
        self.energy_trace: List[float] = []
        self.batches_trained = 0

    def select_dataset(self, samples: torch.Tensor, epochs: int) -> Tuple[torch.Tensor, int]:
        subset = self.subset(samples, self.settings.max_samples)
        n_epochs = min(epochs, self.settings.max_epochs)
        if subset.shape[0] < samples.shape[0] or n_epochs < epochs:
            logger.info(f"Equilibrium sampling uses {subset.shape[0]}/{samples.shape[0]} samples "
                        f"and {n_epochs}/{epochs} epochs")
        return subset, n_epochs

    def run_epoch(self, samples: torch.Tensor, epoch_ind: int) -> Iterator[int]:
        n_samples = samples.shape[0]
        batch_size = min(self.rbm.batch_size, n_samples)
        n_batches = n_samples // batch_size
        indices = torch.randperm(n_samples, generator=self.generator)

        for batch_ind in range(n_batches):
            batch = samples[indices[batch_ind * batch_size:(batch_ind + 1) * batch_size]]
            self.train_batch(batch)
            yield batch_ind

        logger.info(f"Epoch {epoch_ind + 1} | equilibrium batches: {n_batches}"
                    + (f" | last burn-in energy: {self.energy_trace[-1]:.4f}" if self.energy_trace else ""))

    def train_batch(self, batch: torch.Tensor) -> None:
        s = self.settings
        positive = positive_phase(self.rbm, batch)

        start_ind = torch.randint(batch.shape[0], (1,), generator=self.generator).item()
        negative = negative_phase(self.rbm, batch[start_ind], s.burn_in_steps, s.sampling_steps,
                                  energy_every=s.energy_log_every, energy_trace=self.energy_trace)

        self.rbm.apply_update(positive.weights - negative.weights,
                              positive.hidden - negative.hidden,
                              positive.visible - negative.visible,
                              scale=s.learning_rate)
        self.rbm.decay_weights(s.weight_decay)
        self.batches_trained += 1

    def diagnostics(self) -> Dict[str, Any]:
        return {"batches_trained": self.batches_trained, "energy_trace": list(self.energy_trace)}
