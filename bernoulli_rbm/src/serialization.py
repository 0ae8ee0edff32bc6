"""
Parameter snapshots.

A snapshot is the only persisted state of a model: layer sizes, the weight
matrix, both bias vectors, the training method tag and a creation timestamp
in epoch milliseconds. Floats are written with their shortest round-trip
representation, so ``decode_snapshot(encode_snapshot(rbm))`` reproduces the
parameters bit for bit. Where the JSON text is stored is up to the caller.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, List, Mapping, Optional, Union

import torch
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..constants import DTYPE
from .errors import ConfigurationError, SnapshotDecodeError
from .model import BernoulliRBM, TrainingMethod

logger = logging.getLogger(__name__)


class Snapshot(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, strict=True, allow_inf_nan=False)

    visible_size: int = Field(gt=0)
    hidden_size: int = Field(gt=0)
    weights: List[List[float]]
    hidden_bias: List[float]
    visible_bias: List[float]
    # plain strings are the stored form of the tag
    training_method: TrainingMethod = Field(strict=False)
    timestamp: int = Field(ge=0)

    @model_validator(mode="after")
    def check_dimensions(self) -> "Snapshot":
        if len(self.weights) != self.hidden_size:
            raise ValueError(f"weights has {len(self.weights)} rows, expected hidden_size={self.hidden_size}")
        for row_ind, row in enumerate(self.weights):
            if len(row) != self.visible_size:
                raise ValueError(f"weights row {row_ind} has {len(row)} values, "
                                 f"expected visible_size={self.visible_size}")
        if len(self.hidden_bias) != self.hidden_size:
            raise ValueError(f"hidden_bias has {len(self.hidden_bias)} values, expected {self.hidden_size}")
        if len(self.visible_bias) != self.visible_size:
            raise ValueError(f"visible_bias has {len(self.visible_bias)} values, expected {self.visible_size}")
        return self


def encode_snapshot(rbm: BernoulliRBM, timestamp: Optional[int] = None) -> Snapshot:
    """Export the model's parameters. ``timestamp`` defaults to now, in epoch milliseconds."""
    return Snapshot(
        visible_size=rbm.n_visible,
        hidden_size=rbm.n_hidden,
        weights=rbm.W.detach().to(DTYPE).tolist(),
        hidden_bias=rbm.h_bias.detach().to(DTYPE).tolist(),
        visible_bias=rbm.v_bias.detach().to(DTYPE).tolist(),
        training_method=rbm.training_method,
        timestamp=int(time.time() * 1000) if timestamp is None else timestamp,
    )


def decode_snapshot(data: Union[Snapshot, Mapping[str, Any]], **model_kwargs) -> BernoulliRBM:
    """
    Rebuild a model from a snapshot.

    Args:
        data: A :class:`Snapshot` or its plain mapping form
        **model_kwargs: Forwarded to :class:`BernoulliRBM` (learning_rate,
            batch_size, generator); these are not part of the snapshot

    Raises:
        SnapshotDecodeError: If the snapshot is malformed or its dimensions
            are inconsistent. No model is created in that case.
    """
    if not isinstance(data, Snapshot):
        try:
            data = Snapshot.model_validate(data)
        except ValidationError as e:
            raise SnapshotDecodeError(f"Invalid snapshot: {e}") from e

    if "training_method" in model_kwargs:
        raise ConfigurationError("training_method comes from the snapshot and cannot be overridden")
    rbm = BernoulliRBM(data.visible_size, data.hidden_size,
                       training_method=data.training_method, **model_kwargs)
    with torch.no_grad():
        rbm.W.copy_(torch.tensor(data.weights, dtype=DTYPE))
        rbm.h_bias.copy_(torch.tensor(data.hidden_bias, dtype=DTYPE))
        rbm.v_bias.copy_(torch.tensor(data.visible_bias, dtype=DTYPE))
    return rbm


def dumps_snapshot(rbm: BernoulliRBM, timestamp: Optional[int] = None) -> str:
    return encode_snapshot(rbm, timestamp).model_dump_json()


def loads_snapshot(text: Union[str, bytes], **model_kwargs) -> BernoulliRBM:
    try:
        snapshot = Snapshot.model_validate_json(text)
    except ValidationError as e:
        raise SnapshotDecodeError(f"Invalid snapshot: {e}") from e
    return decode_snapshot(snapshot, **model_kwargs)


def save_snapshot(rbm: BernoulliRBM, path: str) -> bool:
    """Write the model's snapshot as JSON. Returns False (and logs) on I/O failure."""
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            f.write(dumps_snapshot(rbm))
    except OSError as e:
        logger.error(f"Failed to save snapshot to {path}: {e}")
        return False
    logger.info(f"Snapshot saved to {path}")
    return True


def load_snapshot(path: str, **model_kwargs) -> Optional[BernoulliRBM]:
    """Read a snapshot written by :func:`save_snapshot`. Returns None (and logs) on failure."""
    try:
        with open(path, "rb") as f:
            rbm = loads_snapshot(f.read(), **model_kwargs)
    except (OSError, SnapshotDecodeError) as e:
        logger.error(f"Failed to load snapshot from {path}: {e}")
        return None
    logger.info(f"Loaded {rbm.n_visible}x{rbm.n_hidden} {rbm.training_method.value} model from {path}")
    return rbm
