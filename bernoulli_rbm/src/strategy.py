"""Shared interface for the per-method training strategies."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Tuple

import torch

from .model import BernoulliRBM, TrainingMethod

logger = logging.getLogger(__name__)


class TrainingStrategy:
    """
    One learning rule over a shared :class:`BernoulliRBM` parameter set.

    Subclasses implement :meth:`run_epoch` as a generator that performs one
    complete parameter update per iteration and yields the batch index after
    it, so the driver can suspend or cancel only between updates.
    """

    method: TrainingMethod

    def __init__(self, rbm: BernoulliRBM) -> None:
        if rbm.training_method != self.method:
            logger.warning(f"{type(self).__name__} is training a model tagged "
                           f"'{rbm.training_method.value}'")
        self.rbm = rbm

    @property
    def generator(self) -> Optional[torch.Generator]:
        return self.rbm.generator

    def select_dataset(self, samples: torch.Tensor, epochs: int) -> Tuple[torch.Tensor, int]:
        """Restrict the data and epoch count this method will use. Default: everything."""
        return samples, epochs

    def subset(self, samples: torch.Tensor, max_samples: int) -> torch.Tensor:
        if samples.shape[0] <= max_samples:
            return samples
        indices = torch.randperm(samples.shape[0], generator=self.generator)[:max_samples]
        return samples[indices]

    def run_epoch(self, samples: torch.Tensor, epoch_ind: int) -> Iterator[int]:
        raise NotImplementedError

    def diagnostics(self) -> Dict[str, Any]:
        return {}
