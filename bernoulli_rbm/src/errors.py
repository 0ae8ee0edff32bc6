"""Exceptions raised by the RBM engine."""


class RBMError(Exception):
    """Base class for all errors raised by bernoulli_rbm."""


class ConfigurationError(RBMError, ValueError):
    """Invalid layer sizes, hyperparameters or sample shapes.

    Raised before any training step runs, so a model is never left half-trained
    because of a bad configuration.
    """


class SnapshotDecodeError(RBMError, ValueError):
    """A parameter snapshot is malformed or dimensionally inconsistent."""
