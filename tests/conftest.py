import numpy as np
import pytest

from fluid_simulation import FluidSimulation
from particle import Particle


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def empty_simulation(rng):
    """No capsules, no emitters, no gravity."""
    return FluidSimulation(config={'default_scene': False, 'gravity': 0.0}, rng=rng)


@pytest.fixture
def default_simulation(rng):
    return FluidSimulation(config={}, rng=rng)


@pytest.fixture
def place():
    """Adds particles at scaled world positions (and optional velocities)."""
    def _place(simulation, positions, velocities=None):
        positions = np.asarray(positions, dtype=np.float64)
        if velocities is None:
            velocities = np.zeros_like(positions)
        particles = [Particle(p, v, scale=1.0) for p, v in zip(positions, np.asarray(velocities, dtype=np.float64))]
        simulation.add_particles(particles)
        return simulation
    return _place
