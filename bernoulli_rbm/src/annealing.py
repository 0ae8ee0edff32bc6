"""
Simulated-annealing (Metropolis) training.

A single annealed state ``(sample, hidden, energy)`` explores hidden-state
space: each proposal flips a few hidden units, resamples the visible layer
from the proposed hidden state and is accepted by the Metropolis criterion at
the current temperature. Every ``update_every`` accepted moves, a small,
clamped gradient step contrasts a fresh data sample against the annealed
state. Each epoch runs a full geometric cooling schedule; one temperature
level (``steps_per_temperature`` proposals) counts as one batch.

The method is far more expensive per update than CD, so only a subset of the
data and a few epochs are used (see :meth:`SimulatedAnnealingTrainer.select_dataset`).
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

import torch

from ..config import AnnealingSettings
from .model import BernoulliRBM, TrainingMethod
from .strategy import TrainingStrategy
from .utils import binary_sample

logger = logging.getLogger(__name__)


def metropolis_acceptance(delta_energy: float, temperature: float) -> float:
    """Probability of accepting a move that changes the energy by ``delta_energy``."""
    if delta_energy <= 0:
        return 1.0
    return math.exp(-delta_energy / temperature)


class AnnealingState(NamedTuple):
    sample: torch.Tensor
    hidden: torch.Tensor
    energy: float


@dataclass
class AnnealingStats:
    """Diagnostics only; none of these gate termination."""

    total_iterations: int = 0
    accepted_moves: int = 0
    energy_decreases: int = 0
    weight_updates: int = 0
    divergent_steps: int = 0
    skipped_updates: int = 0
    final_temperature: Optional[float] = None
    energy_history: List[float] = field(default_factory=list)

    @property
    def acceptance_rate(self) -> float:
        return self.accepted_moves / self.total_iterations if self.total_iterations else 0.0

    @property
    def divergence_detected(self) -> bool:
        return self.divergent_steps > 0 or self.skipped_updates > 0

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["acceptance_rate"] = self.acceptance_rate
        data["divergence_detected"] = self.divergence_detected
        return data


class SimulatedAnnealingTrainer(TrainingStrategy):
    method = TrainingMethod.SIMULATED_ANNEALING

    def __init__(self, rbm: BernoulliRBM, settings: Optional[AnnealingSettings] = None) -> None:
        super().__init__(rbm)
        self.settings = settings or AnnealingSettings()
        self.stats = AnnealingStats()
        self.state: Optional[AnnealingState] = None
        self._warned = False

    def select_dataset(self, samples: torch.Tensor, epochs: int) -> Tuple[torch.Tensor, int]:
        subset = self.subset(samples, self.settings.max_samples)
        n_epochs = min(epochs, self.settings.max_epochs)
        if subset.shape[0] < samples.shape[0] or n_epochs < epochs:
            logger.info(f"Simulated annealing uses {subset.shape[0]}/{samples.shape[0]} samples "
                        f"and {n_epochs}/{epochs} epochs")
        return subset, n_epochs

    def run_epoch(self, samples: torch.Tensor, epoch_ind: int) -> Iterator[int]:
        s = self.settings
        self.rbm.clamp_parameters(s.weight_bound, s.bias_bound)
        self._warned = False
        self.reset_state(samples)

        temperature = s.initial_temperature
        epoch_start = (self.stats.total_iterations, self.stats.accepted_moves)
        level = 0
        while temperature > s.final_temperature:
            for _ in range(s.steps_per_temperature):
                self.step(samples, temperature)
            temperature *= s.cooling_rate
            self.stats.final_temperature = temperature
            yield level
            level += 1

        iterations = self.stats.total_iterations - epoch_start[0]
        accepted = self.stats.accepted_moves - epoch_start[1]
        energy = self.state.energy if self.state is not None else float("nan")
        logger.info(f"Epoch {epoch_ind + 1} | T={temperature:.3f} | "
                    f"accepted={accepted / max(iterations, 1) * 100:.1f}% | energy={energy:.4f}")

    def reset_state(self, samples: torch.Tensor) -> bool:
        """Start the annealed state from a random data sample and its binary hidden sample."""
        sample = self._draw_sample(samples)
        p_h = self.rbm.mean_field_hidden(sample)
        if not torch.isfinite(p_h).all():
            self.state = None
            return False
        hidden = binary_sample(p_h, self.generator)
        self.state = AnnealingState(sample, hidden, float(self.rbm.energy(sample, hidden)))
        return math.isfinite(self.state.energy)

    def propose(self) -> Optional[AnnealingState]:
        """Flip a few distinct hidden units and resample the visible layer.

        Returns None when the model produces non-finite values.
        """
        state = self.state
        proposed_hidden = state.hidden.clone()
        n_flips = min(self.settings.flips_per_proposal, self.rbm.n_hidden)
        units = torch.randperm(self.rbm.n_hidden, generator=self.generator)[:n_flips]
        proposed_hidden[units] = 1.0 - proposed_hidden[units]

        p_v = self.rbm.mean_field_visible(proposed_hidden)
        if not torch.isfinite(p_v).all():
            return None
        proposed_sample = binary_sample(p_v, self.generator)
        proposed_energy = float(self.rbm.energy(proposed_sample, proposed_hidden))
        if not math.isfinite(proposed_energy):
            return None
        return AnnealingState(proposed_sample, proposed_hidden, proposed_energy)

    def step(self, samples: torch.Tensor, temperature: float) -> bool:
        """One Metropolis proposal. Returns True when the move was accepted."""
        stats = self.stats
        stats.total_iterations += 1

        if self.state is None or not math.isfinite(self.state.energy):
            self._divergence("current state energy is not finite")
            self.reset_state(samples)
            return False

        proposal = self.propose()
        if proposal is None:
            self._divergence("proposed state energy is not finite")
            return False

        delta = proposal.energy - self.state.energy
        acceptance = metropolis_acceptance(delta, temperature)
        accepted = acceptance >= 1.0 or torch.rand(1, generator=self.generator).item() < acceptance
        if accepted:
            stats.accepted_moves += 1
            if delta < 0:
                stats.energy_decreases += 1
            self.state = proposal
            if stats.accepted_moves % self.settings.update_every == 0:
                self.update_weights(samples)

        if stats.total_iterations % self.settings.energy_log_every == 0:
            stats.energy_history.append(self.state.energy)
        return accepted

    def update_weights(self, samples: torch.Tensor) -> bool:
        """Clamped gradient step: fresh data sample vs. the annealed state."""
        s = self.settings
        state = self.state
        data = self._draw_sample(samples)
        data_hidden = self.rbm.mean_field_hidden(data)
        lr = self.rbm.learning_rate * s.learning_rate_scale

        weight_delta = lr * (torch.outer(data_hidden, data) - torch.outer(state.hidden, state.sample))
        hidden_delta = lr * (data_hidden - state.hidden)
        visible_delta = lr * (data - state.sample)
        if not (torch.isfinite(weight_delta).all() and torch.isfinite(hidden_delta).all()
                and torch.isfinite(visible_delta).all()):
            self.stats.skipped_updates += 1
            self._divergence("weight update is not finite", count_step=False)
            return False

        self.rbm.apply_update(weight_delta.clamp(-s.max_update, s.max_update),
                              hidden_delta.clamp(-s.max_update, s.max_update),
                              visible_delta.clamp(-s.max_update, s.max_update))
        self.rbm.clamp_parameters(s.weight_bound, s.bias_bound)
        self.stats.weight_updates += 1

        # parameters moved, so the annealed state's energy did too
        self.state = state._replace(energy=float(self.rbm.energy(state.sample, state.hidden)))
        return True

    def diagnostics(self) -> Dict[str, Any]:
        return self.stats.as_dict()

    def _draw_sample(self, samples: torch.Tensor) -> torch.Tensor:
        index = torch.randint(samples.shape[0], (1,), generator=self.generator).item()
        return samples[index].clone()

    def _divergence(self, reason: str, count_step: bool = True) -> None:
        if count_step:
            self.stats.divergent_steps += 1
        if not self._warned:
            logger.warning(f"Divergence detected, step skipped: {reason}")
            self._warned = True
        else:
            logger.debug(f"Divergence detected, step skipped: {reason}")
