import os

import torch

DTYPE = torch.float64

DEFAULT_N_HIDDEN = 64
DEFAULT_LEARNING_RATE = 0.06
DEFAULT_BATCH_SIZE = 32
DEFAULT_EPOCHS = 15
DEFAULT_YIELD_EVERY = 5
SEED = 1234

SIGMOID_CLAMP = 20.0

INIT_SCALE = {
    "contrastive-divergence": 0.01,
    "simulated-annealing": 0.1,
    "equilibrium": 0.005,
}

ANNEALING_INITIAL_TEMPERATURE = 2.0
ANNEALING_FINAL_TEMPERATURE = 0.1
ANNEALING_COOLING_RATE = 0.99
ANNEALING_STEPS_PER_TEMPERATURE = 10
ANNEALING_FLIPS_PER_PROPOSAL = 3
ANNEALING_UPDATE_EVERY = 10
ANNEALING_LEARNING_RATE_SCALE = 0.1
ANNEALING_MAX_UPDATE = 0.01
ANNEALING_WEIGHT_BOUND = 2.0
ANNEALING_BIAS_BOUND = 1.0
ANNEALING_ENERGY_LOG_EVERY = 100
ANNEALING_MAX_SAMPLES = 100
ANNEALING_MAX_EPOCHS = 5

EQUILIBRIUM_LEARNING_RATE = 0.01
EQUILIBRIUM_BURN_IN_STEPS = 1000
EQUILIBRIUM_SAMPLING_STEPS = 300
EQUILIBRIUM_WEIGHT_DECAY = 0.99
EQUILIBRIUM_ENERGY_LOG_EVERY = 100
EQUILIBRIUM_MAX_SAMPLES = 200
EQUILIBRIUM_MAX_EPOCHS = 3

ERROR_PIXEL_THRESHOLD = 0.1
MSE_EXCELLENT = 0.01
MSE_GOOD = 0.05
CONTRIBUTION_MIN_ACTIVATION = 0.01
OVERLAY_STRENGTH = 0.3
FILTER_FLAT_RANGE = 1e-8

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_PACKAGE_DIR = os.path.abspath(os.path.dirname(__file__))
CONFIG_FILE = os.path.join(_PACKAGE_DIR, "config.yaml")
OUTPUT_DIR = os.path.abspath("out")

DEFAULT_FIGURE_SIZE = (10, 6)
