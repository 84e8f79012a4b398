# emitter.py

import math
import numpy as np
import constants
from particle import to_world_vector


class Emitter:
    """
    A point source that periodically fires a three-particle jet.

    All tunables are plain attributes so an editing panel can read and write
    them between frames.

    Data Contract:
    - Inputs:
        - position: raw world units, multiplied by `scale` exactly once.
        - settings (dict | None): optional overrides for period, base_angle,
          angular_velocity, strength and jitter (the 'emitter' config section).
    - Invariants: `timer` only grows between emission events; `angle` changes
      once per emission event.
    """
    def __init__(self, position, settings: dict = None, color=constants.EMITTER_COLOR, scale: float = constants.WORLD_SCALE):
        settings = settings or {}
        self.position = to_world_vector(position, scale)
        self.radius = constants.EMITTER_RADIUS * constants.WORLD_SCALE
        self.color = tuple(color)
        self.timer = 0.0

        self.period = settings.get('period', constants.EMITTER_PERIOD)
        self.base_angle = settings.get('base_angle', constants.EMITTER_BASE_ANGLE)
        self.angular_velocity = settings.get('angular_velocity', constants.EMITTER_ANGULAR_VELOCITY)
        self.strength = settings.get('strength', constants.EMITTER_STRENGTH)
        self.jitter = settings.get('jitter', constants.EMITTER_JITTER)
        self.angle = self.base_angle

    def eval(self, x) -> float:
        """Signed distance from the scaled world position x to the hit-test disc."""
        return math.hypot(x[0] - self.position[0], x[1] - self.position[1]) - self.radius

    def tick(self, dt: float) -> bool:
        """Advances the timer and reports whether the emission period has elapsed."""
        self.timer += dt
        return self.timer > self.period

    def advance_angle(self) -> float:
        """
        Moves the jet angle for one emission event and returns it.
        A still emitter snaps back to its base angle, a rotating one
        advances by its angular velocity.
        """
        if self.angular_velocity == 0:
            self.angle = self.base_angle
        else:
            self.angle += self.angular_velocity
        return self.angle

    def jet_direction(self) -> np.ndarray:
        # Angles are measured on screen, where y points down.
        theta = constants.TWO_PI - math.radians(self.angle)
        return np.array([math.cos(theta), math.sin(theta)])

    def __repr__(self):
        return (f"Emitter(position={self.position.tolist()}, period={self.period}, "
                f"base_angle={self.base_angle}, angular_velocity={self.angular_velocity}, "
                f"strength={self.strength}, jitter={self.jitter})")
