"""Tests for the cooperative training driver."""
import asyncio

import pytest
import torch

from bernoulli_rbm.config import AnnealingSettings, EquilibriumSettings
from bernoulli_rbm.src.annealing import SimulatedAnnealingTrainer
from bernoulli_rbm.src.contrastive import ContrastiveDivergenceTrainer
from bernoulli_rbm.src.equilibrium import EquilibriumTrainer
from bernoulli_rbm.src.errors import ConfigurationError
from bernoulli_rbm.src.model import BernoulliRBM, TrainingMethod
from bernoulli_rbm.src.train import (
    CancellationToken,
    TrainingRun,
    build_strategy,
    train_rbm,
    train_rbm_async,
)


class TestProgress:
    """Tests for progress reporting."""

    def test_callback_reports_every_epoch(self, small_rbm, binary_samples):
        """The callback sees (epoch, total) for epoch = 1..total."""
        calls = []
        train_rbm(small_rbm, binary_samples, epochs=3, progress_callback=lambda e, t: calls.append((e, t)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_total_reflects_method_epoch_limit(self, generator, binary_samples):
        """Methods that cap the epoch count report the capped total."""
        rbm = BernoulliRBM(6, 4, training_method="simulated-annealing", generator=generator)
        settings = AnnealingSettings(initial_temperature=1.0, final_temperature=0.9, cooling_rate=0.5,
                                     steps_per_temperature=2, max_epochs=2)
        calls = []
        report = train_rbm(rbm, binary_samples, epochs=10, strategy=SimulatedAnnealingTrainer(rbm, settings),
                           progress_callback=lambda e, t: calls.append((e, t)))
        assert calls == [(1, 2), (2, 2)]
        assert report.total_epochs == 2

    def test_steps_yield_batch_and_epoch_events(self, small_rbm, binary_samples):
        """Batch events come every yield_every batches, then one epoch event."""
        run = TrainingRun(small_rbm, binary_samples, epochs=1, yield_every=2)
        events = [(event.kind, event.batch) for event in run.steps()]
        assert events == [("batch", 1), ("batch", 3), ("batch", 5), ("epoch", None)]


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_before_start(self, small_rbm, binary_samples):
        """A cancelled token stops the run before any update."""
        token = CancellationToken()
        token.cancel()
        weights_before = small_rbm.W.clone()
        report = train_rbm(small_rbm, binary_samples, epochs=3, cancel_token=token)
        assert report.cancelled
        assert report.epochs_completed == 0
        assert report.batches_completed == 0
        assert torch.equal(small_rbm.W, weights_before)

    def test_cancel_from_progress_callback(self, small_rbm, binary_samples):
        """Cancelling after epoch 2 skips the remaining epochs."""
        token = CancellationToken()
        calls = []

        def on_epoch(epoch, total):
            calls.append(epoch)
            if epoch == 2:
                token.cancel()

        report = train_rbm(small_rbm, binary_samples, epochs=5, progress_callback=on_epoch, cancel_token=token)
        assert calls == [1, 2]
        assert report.cancelled
        assert report.epochs_completed == 2
        assert report.batches_completed == 12

    def test_cancel_mid_epoch_keeps_completed_updates(self, small_rbm, binary_samples):
        """Cancellation is honoured at the next batch yield point, without rollback."""
        token = CancellationToken()
        run = TrainingRun(small_rbm, binary_samples, epochs=3, cancel_token=token, yield_every=2)
        weights_before = small_rbm.W.clone()

        for event in run.steps():
            if event.kind == "batch":
                token.cancel()

        assert run.report.cancelled
        assert run.report.batches_completed == 2
        assert run.report.epochs_completed == 0
        assert not torch.equal(small_rbm.W, weights_before)


class TestAsync:
    """Tests for the asyncio entry point."""

    def test_async_run_completes(self, small_rbm, binary_samples):
        """train_rbm_async trains just like train_rbm."""
        report = asyncio.run(train_rbm_async(small_rbm, binary_samples, epochs=2))
        assert report.epochs_completed == 2
        assert not report.cancelled

    def test_async_run_yields_to_event_loop(self, small_rbm, binary_samples):
        """Other tasks get to run while training, and may cancel it."""
        token = CancellationToken()

        async def canceller():
            await asyncio.sleep(0)
            token.cancel()

        async def scenario():
            training = asyncio.ensure_future(
                train_rbm_async(small_rbm, binary_samples, epochs=50, cancel_token=token, yield_every=1))
            await canceller()
            return await training

        report = asyncio.run(scenario())
        assert report.cancelled
        assert report.epochs_completed < 50


class TestValidation:
    """Tests for input validation and strategy selection."""

    def test_sample_width_mismatch(self, small_rbm):
        """Samples must have one value per visible unit."""
        with pytest.raises(ConfigurationError):
            train_rbm(small_rbm, torch.zeros(8, 5), epochs=1)

    def test_non_positive_epochs(self, small_rbm, binary_samples):
        with pytest.raises(ValueError):
            train_rbm(small_rbm, binary_samples, epochs=0)

    def test_accepts_plain_lists(self, small_rbm, binary_samples):
        """Any collection of equal-length vectors works as input."""
        report = train_rbm(small_rbm, binary_samples.tolist(), epochs=1)
        assert report.batches_completed == 6

    @pytest.mark.parametrize("method, strategy_type", [
        (TrainingMethod.CONTRASTIVE_DIVERGENCE, ContrastiveDivergenceTrainer),
        (TrainingMethod.SIMULATED_ANNEALING, SimulatedAnnealingTrainer),
        (TrainingMethod.EQUILIBRIUM, EquilibriumTrainer),
    ])
    def test_strategy_follows_training_method(self, method, strategy_type):
        """The model's method tag selects the strategy."""
        rbm = BernoulliRBM(4, 3, training_method=method)
        strategy = build_strategy(rbm, AnnealingSettings(), EquilibriumSettings())
        assert isinstance(strategy, strategy_type)
        assert strategy.method == method
