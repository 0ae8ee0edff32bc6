"""
Training configuration loaded from YAML and validated with pydantic.

Usage:
    from bernoulli_rbm.config import load_config

    config = load_config()              # packaged config.yaml
    config = load_config("my.yaml")     # missing sections fall back to defaults
"""
from __future__ import annotations

import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .constants import (
    ANNEALING_BIAS_BOUND, ANNEALING_COOLING_RATE, ANNEALING_ENERGY_LOG_EVERY, ANNEALING_FINAL_TEMPERATURE,
    ANNEALING_FLIPS_PER_PROPOSAL, ANNEALING_INITIAL_TEMPERATURE, ANNEALING_LEARNING_RATE_SCALE,
    ANNEALING_MAX_EPOCHS, ANNEALING_MAX_SAMPLES, ANNEALING_MAX_UPDATE, ANNEALING_STEPS_PER_TEMPERATURE,
    ANNEALING_UPDATE_EVERY, ANNEALING_WEIGHT_BOUND, CONFIG_FILE, DEFAULT_BATCH_SIZE, DEFAULT_EPOCHS,
    DEFAULT_LEARNING_RATE, DEFAULT_N_HIDDEN, DEFAULT_YIELD_EVERY, EQUILIBRIUM_BURN_IN_STEPS,
    EQUILIBRIUM_ENERGY_LOG_EVERY, EQUILIBRIUM_LEARNING_RATE, EQUILIBRIUM_MAX_EPOCHS, EQUILIBRIUM_MAX_SAMPLES,
    EQUILIBRIUM_SAMPLING_STEPS, EQUILIBRIUM_WEIGHT_DECAY, OUTPUT_DIR, SEED,
)
from .src.errors import ConfigurationError
from .src.model import TrainingMethod

logger = logging.getLogger(__name__)


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ModelSettings(_Section):
    n_hidden: int = Field(default=DEFAULT_N_HIDDEN, gt=0)
    learning_rate: float = Field(default=DEFAULT_LEARNING_RATE, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    training_method: TrainingMethod = TrainingMethod.CONTRASTIVE_DIVERGENCE


class TrainingSettings(_Section):
    epochs: int = Field(default=DEFAULT_EPOCHS, gt=0)
    seed: Optional[int] = SEED
    yield_every: int = Field(default=DEFAULT_YIELD_EVERY, gt=0)


class AnnealingSettings(_Section):
    """Simulated-annealing schedule and stability bounds.

    These are empirically chosen defaults, not invariants of the algorithm.
    """

    initial_temperature: float = Field(default=ANNEALING_INITIAL_TEMPERATURE, gt=0)
    final_temperature: float = Field(default=ANNEALING_FINAL_TEMPERATURE, gt=0)
    cooling_rate: float = Field(default=ANNEALING_COOLING_RATE, gt=0, lt=1)
    steps_per_temperature: int = Field(default=ANNEALING_STEPS_PER_TEMPERATURE, gt=0)
    flips_per_proposal: int = Field(default=ANNEALING_FLIPS_PER_PROPOSAL, gt=0)
    update_every: int = Field(default=ANNEALING_UPDATE_EVERY, gt=0)
    learning_rate_scale: float = Field(default=ANNEALING_LEARNING_RATE_SCALE, gt=0)
    max_update: float = Field(default=ANNEALING_MAX_UPDATE, gt=0)
    weight_bound: float = Field(default=ANNEALING_WEIGHT_BOUND, gt=0)
    bias_bound: float = Field(default=ANNEALING_BIAS_BOUND, gt=0)
    energy_log_every: int = Field(default=ANNEALING_ENERGY_LOG_EVERY, gt=0)
    max_samples: int = Field(default=ANNEALING_MAX_SAMPLES, gt=0)
    max_epochs: int = Field(default=ANNEALING_MAX_EPOCHS, gt=0)

    @model_validator(mode="after")
    def check_schedule(self) -> "AnnealingSettings":
        if self.final_temperature >= self.initial_temperature:
            raise ValueError("final_temperature must be below initial_temperature")
        return self


class EquilibriumSettings(_Section):
    learning_rate: float = Field(default=EQUILIBRIUM_LEARNING_RATE, gt=0)
    burn_in_steps: int = Field(default=EQUILIBRIUM_BURN_IN_STEPS, ge=0)
    sampling_steps: int = Field(default=EQUILIBRIUM_SAMPLING_STEPS, gt=0)
    weight_decay: float = Field(default=EQUILIBRIUM_WEIGHT_DECAY, gt=0, le=1)
    energy_log_every: int = Field(default=EQUILIBRIUM_ENERGY_LOG_EVERY, gt=0)
    max_samples: int = Field(default=EQUILIBRIUM_MAX_SAMPLES, gt=0)
    max_epochs: int = Field(default=EQUILIBRIUM_MAX_EPOCHS, gt=0)


class PathSettings(_Section):
    snapshot_path: str = os.path.join(OUTPUT_DIR, "rbm_snapshot.json")
    plot_path: str = os.path.join(OUTPUT_DIR, "training_metrics.png")


class RBMConfig(_Section):
    model: ModelSettings = ModelSettings()
    training: TrainingSettings = TrainingSettings()
    annealing: AnnealingSettings = AnnealingSettings()
    equilibrium: EquilibriumSettings = EquilibriumSettings()
    paths: PathSettings = PathSettings()


def load_config(path: Optional[str] = None) -> RBMConfig:
    """Load YAML configuration file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigurationError: If the YAML is invalid or fails validation.
    """
    config_path = path or CONFIG_FILE
    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML configuration {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration {config_path} must be a mapping of sections")

    try:
        config = RBMConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {config_path}: {e}") from e
    logger.debug(f"Loaded configuration from {config_path}")
    return config
