"""
Bernoulli Restricted Boltzmann Machine.

A bipartite energy-based model with binary visible and hidden units and no
intra-layer connections. The parameter set (``W``, ``h_bias``, ``v_bias``) is
shared by every training strategy; strategies mutate it only through
:meth:`BernoulliRBM.apply_update` and :meth:`BernoulliRBM.clamp_parameters`.

Every operation accepts either a single vector (1-D) or a batch with one
sample per row (2-D).
"""
from __future__ import annotations

import operator
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

import torch
import torch.nn as nn

from ..constants import DEFAULT_BATCH_SIZE, DEFAULT_LEARNING_RATE, DTYPE, INIT_SCALE
from .errors import ConfigurationError
from .utils import binary_sample, sigmoid


class TrainingMethod(str, Enum):
    CONTRASTIVE_DIVERGENCE = "contrastive-divergence"
    SIMULATED_ANNEALING = "simulated-annealing"
    EQUILIBRIUM = "equilibrium"

    @classmethod
    def parse(cls, value: "TrainingMethod | str") -> "TrainingMethod":
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(method.value for method in cls)
            raise ConfigurationError(f"Unknown training method {value!r}. Valid are: {valid}") from None


class Reconstruction(NamedTuple):
    hidden: torch.Tensor
    reconstruction: torch.Tensor


class GibbsTrace(NamedTuple):
    visible: torch.Tensor
    hidden: torch.Tensor
    energies: List[float]


def _check_positive_int(name: str, value) -> int:
    if not isinstance(value, bool):
        try:
            value = operator.index(value)
        except TypeError:
            pass
        else:
            if value > 0:
                return value
    raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


class BernoulliRBM(nn.Module):
    """
    Binary RBM whose parameters are updated by hand-written learning rules.

    Args:
        n_visible (int): Number of visible units
        n_hidden (int): Number of hidden units
        learning_rate (float): Step size used by contrastive divergence and, scaled
            down, by simulated annealing
        batch_size (int): Mini-batch size for batch-based strategies
        training_method (TrainingMethod | str): Which strategy trains this model.
            Fixed for the model's lifetime; also selects the weight init scale.
        generator (torch.Generator, optional): Random source for every draw the
            model and its trainers make. Pass a seeded generator for reproducible runs.

    Raises:
        ConfigurationError: If sizes or hyperparameters are invalid.
    """

    def __init__(self,
                 n_visible: int,
                 n_hidden: int,
                 learning_rate: float = DEFAULT_LEARNING_RATE,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 training_method: TrainingMethod | str = TrainingMethod.CONTRASTIVE_DIVERGENCE,
                 generator: Optional[torch.Generator] = None) -> None:
        super().__init__()
        self.n_visible = _check_positive_int("n_visible", n_visible)
        self.n_hidden = _check_positive_int("n_hidden", n_hidden)
        self.batch_size = _check_positive_int("batch_size", batch_size)
        if not learning_rate > 0:
            raise ConfigurationError(f"learning_rate must be positive, got {learning_rate!r}")
        self.learning_rate = float(learning_rate)
        self.training_method = TrainingMethod.parse(training_method)
        self.generator = generator

        scale = INIT_SCALE[self.training_method.value]
        weights = (torch.rand(n_hidden, n_visible, generator=generator, dtype=DTYPE) - 0.5) * 2 * scale
        self.W = nn.Parameter(weights, requires_grad=False)
        self.h_bias = nn.Parameter(torch.zeros(n_hidden, dtype=DTYPE), requires_grad=False)
        self.v_bias = nn.Parameter(torch.zeros(n_visible, dtype=DTYPE), requires_grad=False)

    def extra_repr(self) -> str:
        return (f"n_visible={self.n_visible}, n_hidden={self.n_hidden}, "
                f"training_method={self.training_method.value}")

    def as_tensor(self, values) -> torch.Tensor:
        """Copy ``values`` into a tensor of the model's dtype; the caller's data is never aliased."""
        return torch.as_tensor(values, dtype=DTYPE).clone()

    @torch.no_grad()
    def energy(self, visible: torch.Tensor, hidden: torch.Tensor) -> torch.Tensor:
        """
        E(v, h) = -v·b_v - h·b_h - h·W·v

        Returns a scalar tensor for single vectors or one energy per row for batches.
        """
        visible = torch.as_tensor(visible, dtype=DTYPE)
        hidden = torch.as_tensor(hidden, dtype=DTYPE)
        interaction = ((visible @ self.W.t()) * hidden).sum(dim=-1)
        return -(visible @ self.v_bias) - (hidden @ self.h_bias) - interaction

    @torch.no_grad()
    def mean_field_hidden(self, visible: torch.Tensor) -> torch.Tensor:
        """p(h=1|v) for every hidden unit."""
        return sigmoid(torch.as_tensor(visible, dtype=DTYPE) @ self.W.t() + self.h_bias)

    @torch.no_grad()
    def mean_field_visible(self, hidden: torch.Tensor) -> torch.Tensor:
        """p(v=1|h) for every visible unit."""
        return sigmoid(torch.as_tensor(hidden, dtype=DTYPE) @ self.W + self.v_bias)

    def binary_hidden(self, visible: torch.Tensor) -> torch.Tensor:
        return binary_sample(self.mean_field_hidden(visible), self.generator)

    def binary_visible(self, hidden: torch.Tensor) -> torch.Tensor:
        return binary_sample(self.mean_field_visible(hidden), self.generator)

    def sample_h(self, v: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Sample hidden units given visible units.

        Returns:
            tuple: (probabilities, binary_samples) for hidden units
        """
        p_h = self.mean_field_hidden(v)
        return p_h, binary_sample(p_h, self.generator)

    def sample_v(self, h: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Sample visible units given hidden units.

        Returns:
            tuple: (probabilities, binary_samples) for visible units
        """
        p_v = self.mean_field_visible(h)
        return p_v, binary_sample(p_v, self.generator)

    def gibbs_step(self, visible: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """One binary Gibbs sweep v -> h -> v'. Returns (new_visible, hidden)."""
        hidden = self.binary_hidden(visible)
        return self.binary_visible(hidden), hidden

    def gibbs_chain(self,
                    initial_visible: torch.Tensor,
                    n_steps: int,
                    energy_every: int = 0) -> GibbsTrace:
        """
        Run a binary Gibbs chain for ``n_steps`` sweeps.

        Args:
            initial_visible: Chain starting point; it is copied, never modified.
            n_steps: Number of v -> h -> v sweeps (0 just samples h once).
            energy_every: Record E(v, h) every this many sweeps (and after the
                final sweep). 0 disables the trace.

        Returns:
            GibbsTrace: final visible state, hidden state and recorded energies
            (mean energy when running a batch of chains).
        """
        visible = self.as_tensor(initial_visible)
        hidden = self.binary_hidden(visible)
        energies: List[float] = []
        for step in range(1, n_steps + 1):
            visible = self.binary_visible(hidden)
            hidden = self.binary_hidden(visible)
            if energy_every and (step % energy_every == 0 or step == n_steps):
                energies.append(self.energy(visible, hidden).mean().item())
        return GibbsTrace(visible, hidden, energies)

    def reconstruct(self, sample) -> Reconstruction:
        """
        Deterministic forward/backward mean-field pass.

        Read-only: safe whenever no training run holds the model.
        """
        visible = self.as_tensor(sample)
        hidden = self.mean_field_hidden(visible)
        return Reconstruction(hidden=hidden, reconstruction=self.mean_field_visible(hidden))

    @torch.no_grad()
    def apply_update(self,
                     weight_delta: torch.Tensor,
                     hidden_delta: torch.Tensor,
                     visible_delta: torch.Tensor,
                     scale: float = 1.0) -> None:
        """Additive in-place update: W += scale*dW, h_bias += scale*dh, v_bias += scale*dv."""
        self.W.add_(weight_delta, alpha=scale)
        self.h_bias.add_(hidden_delta, alpha=scale)
        self.v_bias.add_(visible_delta, alpha=scale)

    @torch.no_grad()
    def clamp_parameters(self, weight_bound: float, bias_bound: float) -> None:
        self.W.clamp_(-weight_bound, weight_bound)
        self.h_bias.clamp_(-bias_bound, bias_bound)
        self.v_bias.clamp_(-bias_bound, bias_bound)

    def parameters_finite(self) -> bool:
        return bool(torch.isfinite(self.W).all()
                    and torch.isfinite(self.h_bias).all()
                    and torch.isfinite(self.v_bias).all())

    @torch.no_grad()
    def decay_weights(self, factor: float) -> None:
        """Multiplicative (L2-style) shrinkage of the weight matrix."""
        self.W.mul_(factor)
