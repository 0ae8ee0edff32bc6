"""Bernoulli RBM learning engine with contrastive-divergence, simulated-annealing and equilibrium trainers."""
from .config import RBMConfig, load_config
from .src.errors import ConfigurationError, RBMError, SnapshotDecodeError
from .src.model import BernoulliRBM, Reconstruction, TrainingMethod
from .src.serialization import (
    Snapshot, decode_snapshot, dumps_snapshot, encode_snapshot, load_snapshot, loads_snapshot, save_snapshot,
)
from .src.train import CancellationToken, TrainingReport, TrainingRun, train_rbm, train_rbm_async

__version__ = "0.1.0"

__all__ = [
    "BernoulliRBM",
    "CancellationToken",
    "ConfigurationError",
    "RBMConfig",
    "RBMError",
    "Reconstruction",
    "Snapshot",
    "SnapshotDecodeError",
    "TrainingMethod",
    "TrainingReport",
    "TrainingRun",
    "decode_snapshot",
    "dumps_snapshot",
    "encode_snapshot",
    "load_config",
    "load_snapshot",
    "loads_snapshot",
    "save_snapshot",
    "train_rbm",
    "train_rbm_async",
]
