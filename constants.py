# constants.py

"""
Application Constants

This module defines static configuration values for the simulation core and
the demo window. Values that are meant to be tuned per run live in
config.json; the ones here are the defaults the engine falls back to.

Data Contract:
- All values are immutable constants.
- World coordinates are given in raw world units unless the name says SCALED.
"""

import math

# --- World geometry ---
# The simulation world is scaled by WORLD_SCALE so that the per-frame step
# size is decoupled from the visual size of the world.
WORLD_SCALE = 100.0
WORLD_MIN = (-0.6, -0.6)
WORLD_MAX = (0.6, 0.9)
SCALED_WORLD_MIN = (WORLD_MIN[0] * WORLD_SCALE, WORLD_MIN[1] * WORLD_SCALE)
SCALED_WORLD_MAX = (WORLD_MAX[0] * WORLD_SCALE, WORLD_MAX[1] * WORLD_SCALE)

# Particle radius doubles as the SPH support radius h.
PARTICLE_RADIUS = 0.015 * WORLD_SCALE
SUPPORT_RADIUS = PARTICLE_RADIUS

# --- Solver constants (Clavet et al. 2005, "Particle-based Viscoelastic Fluid Simulation") ---
GRAVITY = 0.03              # Added to the vertical velocity once per frame (y points down).
SOLVER_STEP = 1.0           # The dt used inside the viscosity and relaxation formulas.
VISCOSITY_SIGMA = 0.9       # Linear viscosity term.
VISCOSITY_BETA = 0.3        # Quadratic viscosity term.
REST_DENSITY = 10.0
STIFFNESS = 0.009
NEAR_STIFFNESS = 1.2
COLLISION_DAMPING = 0.2     # Fraction of the capsule penetration corrected per frame.

# --- Emission defaults ---
EMITTER_PERIOD = 0.05       # Seconds between emission events.
EMITTER_BASE_ANGLE = 70.0   # Degrees.
EMITTER_ANGULAR_VELOCITY = 0.0  # Degrees per emission event.
EMITTER_STRENGTH = 0.006    # Raw world units per frame.
EMITTER_JITTER = 2.0        # Scaled by JITTER_UNIT to get the per-axis velocity noise.
EMITTER_RADIUS = 0.015      # Raw world units, used for hit-testing.
JITTER_UNIT = 1e-4
EMISSION_OFFSETS = (-0.8, 0.0, 0.8)  # In units of h, along the perpendicular of the jet.

LIMIT_PARTICLES = True
MAX_PARTICLES = 1500

# --- Default scene ---
CAPSULE_RADIUS = 0.03
FRAME_RADIUS = 0.06

# Colors (RGB)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)
CAPSULE_COLOR = (0, 128, 0)
EMITTER_COLOR = (0, 0, 255)
PENDING_CAPSULE_COLOR = (128, 200, 128)
SELECTED_EMITTER_COLOR = (255, 255, 0)

# --- Demo window ---
WIDTH = 1200  # Pixels
HEIGHT = 900  # Pixels
FPS = 60      # Frames per second
TITLE = "Fluid Simulator"

TWO_PI = 2.0 * math.pi
