"""Shared fixtures: small models and deterministic sample sets."""
import pytest
import torch

from bernoulli_rbm.src.model import BernoulliRBM
from bernoulli_rbm.src.utils import make_generator


@pytest.fixture
def generator():
    """Seeded random source so every test run draws the same numbers."""
    return make_generator(0)


@pytest.fixture
def binary_samples(generator):
    """24 binary samples of 6 units."""
    return torch.bernoulli(torch.full((24, 6), 0.5, dtype=torch.float64), generator=generator)


@pytest.fixture
def small_rbm(generator):
    """6-visible / 4-hidden CD model."""
    return BernoulliRBM(n_visible=6, n_hidden=4, learning_rate=0.1, batch_size=4, generator=generator)


def zero_parameters(rbm):
    with torch.no_grad():
        rbm.W.zero_()
        rbm.h_bias.zero_()
        rbm.v_bias.zero_()
    return rbm
