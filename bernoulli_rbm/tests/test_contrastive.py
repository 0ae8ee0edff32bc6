"""Tests for CD-1 training."""
import torch

from bernoulli_rbm.src.contrastive import (
    ContrastiveDivergenceTrainer,
    contrastive_divergence_gradients,
    train_single_batch,
)
from bernoulli_rbm.src.evaluate import evaluate_reconstruction
from bernoulli_rbm.src.model import BernoulliRBM
from bernoulli_rbm.src.train import train_rbm
from bernoulli_rbm.src.utils import make_generator

from .conftest import zero_parameters


class TestGradients:
    """Tests for the CD-1 statistics."""

    def test_zero_samples_have_no_positive_signal(self, small_rbm):
        """All-zero data contributes nothing to the positive phase."""
        batch = torch.zeros(4, 6, dtype=torch.float64)
        grads = contrastive_divergence_gradients(small_rbm, batch)
        assert torch.equal(grads.positive_weights, torch.zeros(4, 6, dtype=torch.float64))

    def test_zero_samples_update_is_negative_phase_only(self, small_rbm):
        """On all-zero data the weight change is exactly -lr times the negative statistic."""
        batch = torch.zeros(4, 6, dtype=torch.float64)
        grads = contrastive_divergence_gradients(small_rbm, batch)
        weights_before = small_rbm.W.clone()
        train_single_batch(small_rbm, batch)
        assert torch.allclose(small_rbm.W - weights_before, -small_rbm.learning_rate * grads.negative_weights)

    def test_fixed_point_has_zero_gradient(self, small_rbm):
        """Identical samples already equal to the model's reconstruction produce no update."""
        zero_parameters(small_rbm)
        batch = torch.full((4, 6), 0.5, dtype=torch.float64)
        grads = contrastive_divergence_gradients(small_rbm, batch)
        assert not grads.weights.any()
        assert not grads.hidden.any()
        assert not grads.visible.any()

        train_single_batch(small_rbm, batch)
        assert not small_rbm.W.any()
        assert not small_rbm.h_bias.any()
        assert not small_rbm.v_bias.any()

    def test_gradients_are_batch_averages(self, small_rbm, binary_samples):
        """The batch statistic equals the mean of the per-sample statistics."""
        batch = binary_samples[:4]
        batch_grads = contrastive_divergence_gradients(small_rbm, batch)
        per_sample = [contrastive_divergence_gradients(small_rbm, batch[i:i + 1]) for i in range(4)]
        assert torch.allclose(batch_grads.weights, sum(g.weights for g in per_sample) / 4)
        assert torch.allclose(batch_grads.visible, sum(g.visible for g in per_sample) / 4)


class TestTrainer:
    """Tests for CD epochs."""

    def test_one_update_per_full_batch(self, small_rbm, binary_samples):
        """24 samples with batch size 4 give 6 batches per epoch."""
        report = train_rbm(small_rbm, binary_samples, epochs=2)
        assert report.batches_completed == 12
        assert report.epochs_completed == 2
        assert len(report.diagnostics["epoch_losses"]) == 2

    def test_fewer_samples_than_batch_size(self, small_rbm, binary_samples, caplog):
        """No updates happen when a full batch cannot be formed."""
        weights_before = small_rbm.W.clone()
        report = train_rbm(small_rbm, binary_samples[:3], epochs=2)
        assert report.batches_completed == 0
        assert report.epochs_completed == 2
        assert torch.equal(small_rbm.W, weights_before)
        assert "no updates" in caplog.text

    def test_caller_samples_are_not_modified(self, small_rbm, binary_samples):
        """Training works on a copy of the data."""
        before = binary_samples.clone()
        train_rbm(small_rbm, binary_samples, epochs=2)
        assert torch.equal(binary_samples, before)

    def test_reconstruction_improves(self):
        """Training on a repeated pattern lowers its reconstruction error."""
        pattern = torch.tensor([1.0, 1.0, 1.0, 0.0, 0.0, 0.0], dtype=torch.float64)
        samples = pattern.repeat(32, 1)
        rbm = BernoulliRBM(6, 4, learning_rate=0.1, batch_size=8, generator=make_generator(3))

        before = evaluate_reconstruction(rbm, samples)
        train_rbm(rbm, samples, epochs=20)
        after = evaluate_reconstruction(rbm, samples)
        assert after < before

    def test_trainer_tracks_losses(self, small_rbm, binary_samples):
        """Mean batch loss is recorded for every epoch that ran updates."""
        trainer = ContrastiveDivergenceTrainer(small_rbm)
        batches = list(trainer.run_epoch(binary_samples, 0))
        assert batches == list(range(6))
        assert len(trainer.epoch_losses) == 1
        assert trainer.epoch_losses[0] >= 0
