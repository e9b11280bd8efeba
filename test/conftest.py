"""Pytest configuration for simkernels tests."""

import sys
from pathlib import Path

import pytest
import torch

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from simkernels.matrices import random_squared_distances  # noqa: E402

N_POINTS = 10


@pytest.fixture
def generator():
    """Seeded random generator for reproducible matrices and parameters."""
    return torch.Generator().manual_seed(42)


@pytest.fixture
def d2m(generator):
    """Squared distances between 10 random 3D points (float64)."""
    return random_squared_distances(N_POINTS, n_dims=3, generator=generator)


@pytest.fixture
def per_point(generator):
    """Random per-point parameter values in [0.5, 2.5)."""
    return torch.rand(N_POINTS, generator=generator, dtype=torch.float64) * 2 + 0.5


@pytest.fixture
def off_diagonal():
    """Mask selecting the off-diagonal entries of the d2m fixture."""
    return ~torch.eye(N_POINTS, dtype=torch.bool)
