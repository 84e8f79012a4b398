# particle.py

import numpy as np
import constants


def to_world_vector(value, scale: float = constants.WORLD_SCALE) -> np.ndarray:
    """
    Converts a 2-component input into a float64 world-space vector,
    multiplying it by `scale`. Pass scale=1.0 for values already in the
    scaled world space.
    """
    vector = np.asarray(value, dtype=np.float64).reshape(-1)
    if vector.shape != (2,):
        raise ValueError(f"Expected a 2D vector, got {value!r}")
    if not np.all(np.isfinite(vector)):
        raise ValueError(f"Vector components must be finite, got {value!r}")
    return vector * scale


class Particle:
    """
    Represents a single fluid particle.

    The simulation keeps live particles in flat NumPy arrays; this record is
    what gets pushed into those arrays on emission and what is returned when a
    single particle is inspected.

    Data Contract:
    - Inputs:
        - position, velocity: raw world units, multiplied by `scale` exactly once.
        - color (tuple): RGB color.
        - scale (float): WORLD_SCALE for raw inputs, 1.0 for scaled inputs.
    - Invariants: radius is always the global particle radius (= support radius h).
      A new particle keeps its initial velocity for one frame (is_new).
    """
    def __init__(self, position, velocity, color=constants.EMITTER_COLOR, scale: float = constants.WORLD_SCALE):
        self.position = to_world_vector(position, scale)
        self.velocity = to_world_vector(velocity, scale)
        self.color = tuple(color)
        self.radius = constants.PARTICLE_RADIUS

        # Position snapshot used to re-derive velocity, and the displacement
        # deferred to the next frame by the density relaxation.
        self.o = self.position.copy()
        self.f = np.zeros(2, dtype=np.float64)

        self.density = 0.0
        self.near_density = 0.0
        self.is_new = True

    def __repr__(self):
        return (f"Particle(position={self.position.tolist()}, velocity={self.velocity.tolist()}, "
                f"density={self.density:.3f}, near_density={self.near_density:.3f})")
