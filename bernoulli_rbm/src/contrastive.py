"""CD-1 training with mean-field probabilities instead of binary samples."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, NamedTuple

import torch

from .model import BernoulliRBM, TrainingMethod
from .strategy import TrainingStrategy

logger = logging.getLogger(__name__)


class CDGradients(NamedTuple):
    positive_weights: torch.Tensor
    negative_weights: torch.Tensor
    hidden: torch.Tensor
    visible: torch.Tensor

    @property
    def weights(self) -> torch.Tensor:
        return self.positive_weights - self.negative_weights


def contrastive_divergence_gradients(rbm: BernoulliRBM, batch: torch.Tensor) -> CDGradients:
    """
    Compute batch-averaged CD-1 statistics.

    Positive phase uses the data, negative phase a single mean-field
    reconstruction. No binarization anywhere.

    Args:
        rbm (BernoulliRBM): Model providing the current parameters
        batch (torch.Tensor): (batch_size, n_visible) samples

    Returns:
        CDGradients: positive and negative weight statistics plus hidden and
        visible bias gradients
    """
    v0 = batch
    ph0 = rbm.mean_field_hidden(v0)
    v1 = rbm.mean_field_visible(ph0)
    ph1 = rbm.mean_field_hidden(v1)

    n = v0.shape[0]
    positive = ph0.t() @ v0 / n
    negative = ph1.t() @ v1 / n
    return CDGradients(
        positive_weights=positive,
        negative_weights=negative,
        hidden=(ph0 - ph1).mean(0),
        visible=(v0 - v1).mean(0),
    )


def train_single_batch(rbm: BernoulliRBM, batch: torch.Tensor) -> float:
    """Apply one CD-1 update and return the batch's mean squared reconstruction error."""
    grads = contrastive_divergence_gradients(rbm, batch)
    rbm.apply_update(grads.weights, grads.hidden, grads.visible, scale=rbm.learning_rate)
    # v0 - v1 is the visible gradient, averaged per unit
    return float((grads.visible ** 2).mean())


class ContrastiveDivergenceTrainer(TrainingStrategy):
    method = TrainingMethod.CONTRASTIVE_DIVERGENCE

    def __init__(self, rbm: BernoulliRBM) -> None:
        super().__init__(rbm)
        self.epoch_losses = []

    def run_epoch(self, samples: torch.Tensor, epoch_ind: int) -> Iterator[int]:
        n_samples = samples.shape[0]
        batch_size = self.rbm.batch_size
        n_batches = n_samples // batch_size
        if n_batches == 0:
            logger.warning(f"Epoch {epoch_ind + 1}: {n_samples} samples is fewer than "
                           f"batch_size={batch_size}; no updates")
            return

        indices = torch.randperm(n_samples, generator=self.generator)
        epoch_loss = 0.0
        for batch_ind in range(n_batches):
            batch = samples[indices[batch_ind * batch_size:(batch_ind + 1) * batch_size]]
            epoch_loss += train_single_batch(self.rbm, batch)
            yield batch_ind

        self.epoch_losses.append(epoch_loss / n_batches)
        logger.debug(f"Epoch {epoch_ind + 1} | CD loss: {self.epoch_losses[-1]:.6f}")

    def diagnostics(self) -> Dict[str, Any]:
        return {"epoch_losses": list(self.epoch_losses)}
