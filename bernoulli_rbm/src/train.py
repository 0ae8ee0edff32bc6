"""Cooperative training driver shared by all strategies."""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional


from ..config import AnnealingSettings, EquilibriumSettings
from ..constants import DEFAULT_YIELD_EVERY
from .annealing import SimulatedAnnealingTrainer
from .contrastive import ContrastiveDivergenceTrainer
from .data_loader import as_sample_tensor
from .equilibrium import EquilibriumTrainer
from .errors import ConfigurationError
from .model import BernoulliRBM, TrainingMethod
from .strategy import TrainingStrategy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Thread-safe stop request, honoured at the next yield point."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class TrainingEvent:
    kind: str  # "batch" or "epoch"
    epoch: int
    total_epochs: int
    batch: Optional[int] = None


@dataclass
class TrainingReport:
    method: TrainingMethod
    total_epochs: int
    epochs_completed: int = 0
    batches_completed: int = 0
    cancelled: bool = False
    diagnostics: Dict[str, Any] = field(default_factory=dict)


def build_strategy(rbm: BernoulliRBM,
                   annealing: Optional[AnnealingSettings] = None,
                   equilibrium: Optional[EquilibriumSettings] = None) -> TrainingStrategy:
    """Pick the strategy matching the model's training_method tag."""
    if rbm.training_method == TrainingMethod.CONTRASTIVE_DIVERGENCE:
        return ContrastiveDivergenceTrainer(rbm)
    if rbm.training_method == TrainingMethod.SIMULATED_ANNEALING:
        return SimulatedAnnealingTrainer(rbm, annealing)
    if rbm.training_method == TrainingMethod.EQUILIBRIUM:
        return EquilibriumTrainer(rbm, equilibrium)
    raise ValueError(f"No strategy for training method {rbm.training_method!r}")


class TrainingRun:
    """
    A single ``fit`` over a model, driven as a generator.

    The run owns the model's parameters until it finishes. :meth:`steps` yields
    a :class:`TrainingEvent` every ``yield_every`` batches and after every
    epoch; the cancellation token is checked right after each yield, never in
    the middle of a batch. A cancelled run keeps whatever the last completed
    update produced.

    Args:
        rbm (BernoulliRBM): Model to train in place
        samples: Collection of equal-length vectors in [0, 1]. Copied; the
            caller's data is never modified.
        epochs (int): Requested epoch count (strategies may use fewer)
        progress_callback (callable, optional): Called as ``(epoch, total_epochs)``
            after each completed epoch, epoch in [1, total_epochs]
        cancel_token (CancellationToken, optional): Cooperative stop signal
        strategy (TrainingStrategy, optional): Defaults to the one selected by
            the model's training_method
        yield_every (int): Batches between intra-epoch yield points

    Raises:
        ConfigurationError: If the samples do not match the model's visible size.
    """

    def __init__(self,
                 rbm: BernoulliRBM,
                 samples,
                 epochs: int,
                 progress_callback: Optional[ProgressCallback] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 strategy: Optional[TrainingStrategy] = None,
                 yield_every: int = DEFAULT_YIELD_EVERY) -> None:
        if epochs <= 0:
            raise ConfigurationError(f"epochs must be positive, got {epochs}")
        if yield_every <= 0:
            raise ConfigurationError(f"yield_every must be positive, got {yield_every}")
        self.rbm = rbm
        self.samples = as_sample_tensor(samples, rbm.n_visible)
        self.epochs = epochs
        self.progress_callback = progress_callback
        self.cancel_token = cancel_token or CancellationToken()
        self.strategy = strategy or build_strategy(rbm)
        self.yield_every = yield_every
        self.report = TrainingReport(method=self.strategy.method, total_epochs=epochs)

    def steps(self) -> Iterator[TrainingEvent]:
        data, total_epochs = self.strategy.select_dataset(self.samples, self.epochs)
        report = self.report
        report.total_epochs = total_epochs
        logger.info(f"Training {self.rbm.n_visible}x{self.rbm.n_hidden} RBM with "
                    f"{self.strategy.method.value} for {total_epochs} epochs on {data.shape[0]} samples")

        try:
            for epoch_ind in range(total_epochs):
                if self._stop_requested():
                    return
                for batch_ind in self.strategy.run_epoch(data, epoch_ind):
                    report.batches_completed += 1
                    if (batch_ind + 1) % self.yield_every == 0:
                        yield TrainingEvent("batch", epoch_ind + 1, total_epochs, batch_ind)
                        if self._stop_requested():
                            return

                report.epochs_completed = epoch_ind + 1
                if self.progress_callback is not None:
                    self.progress_callback(epoch_ind + 1, total_epochs)
                yield TrainingEvent("epoch", epoch_ind + 1, total_epochs)
        finally:
            report.diagnostics = self.strategy.diagnostics()

    def run(self) -> TrainingReport:
        for _ in self.steps():
            pass
        return self.report

    async def run_async(self) -> TrainingReport:
        """Same as :meth:`run`, handing control back to the event loop at every yield point."""
        for _ in self.steps():
            await asyncio.sleep(0)
        return self.report

    def _stop_requested(self) -> bool:
        if self.cancel_token.cancelled:
            self.report.cancelled = True
            logger.info(f"Training cancelled after {self.report.epochs_completed} epochs "
                        f"({self.report.batches_completed} batches)")
            return True
        return False


def train_rbm(rbm: BernoulliRBM, samples, epochs: int,
              progress_callback: Optional[ProgressCallback] = None,
              cancel_token: Optional[CancellationToken] = None,
              **kwargs) -> TrainingReport:
    """Train ``rbm`` in place with the strategy selected by its training_method."""
    return TrainingRun(rbm, samples, epochs, progress_callback, cancel_token, **kwargs).run()


async def train_rbm_async(rbm: BernoulliRBM, samples, epochs: int,
                          progress_callback: Optional[ProgressCallback] = None,
                          cancel_token: Optional[CancellationToken] = None,
                          **kwargs) -> TrainingReport:
    return await TrainingRun(rbm, samples, epochs, progress_callback, cancel_token, **kwargs).run_async()
