# fluid_simulation.py

import json
import math
import logging
from collections import namedtuple
from contextlib import contextmanager

import numba
import numpy as np

import constants
from capsule import Capsule, _closest_point_on_segment
from emitter import Emitter
from particle import Particle, to_world_vector
from spatial_hash import SpatialHashGrid, _gather_neighbors_jit

logger = logging.getLogger("fluid_sim")

# Read-only view of the particle state handed to the renderer.
ParticleFrame = namedtuple('ParticleFrame', ['positions', 'velocities', 'densities', 'near_densities', 'colors', 'radius'])


class SimulationBusyError(RuntimeError):
    """Raised when the simulation is used while an update is in progress."""


def load_config(config_path='config.json'):
    """Loads the run configuration. Missing or malformed files raise."""
    with open(config_path, 'r') as f:
        return json.load(f)


# --- JIT-Compiled Pair Passes ---
# These functions are compiled to machine code by Numba. They are kept outside
# the FluidSimulation class and operate only on NumPy arrays and scalars, as
# required by Numba's nopython mode. Every pass walks each particle i over the
# candidates from the spatial grid and keeps pairs with 0 < r^2 <= h^2, so each
# unordered pair is visited once from each side.

@numba.jit(nopython=True)
def _apply_viscosity_jit(positions, velocities, h, sigma, beta, step,
                         origin_x, origin_y, cell_size, grid_width, grid_height, grid_offsets, grid_indices, scratch):
    """
    Radial viscosity impulses (Clavet et al. 2005, algorithm 5).
    Each impulse is applied with opposite signs to i and j, so the pass
    conserves linear momentum.
    """
    h_sq = h * h
    for i in range(positions.shape[0]):
        count = _gather_neighbors_jit(i, positions, origin_x, origin_y, cell_size, grid_width, grid_height,
                                      grid_offsets, grid_indices, scratch)
        for k in range(count):
            j = scratch[k]
            dx = positions[i, 0] - positions[j, 0]
            dy = positions[i, 1] - positions[j, 1]
            r_sq = dx * dx + dy * dy
            if r_sq <= 0.0 or r_sq > h_sq:
                continue

            r = math.sqrt(r_sq)
            ux = dx / r
            uy = dy / r
            one_minus_q = 1.0 - r / h

            # Closing speed along the separation axis.
            u = (velocities[i, 0] - velocities[j, 0]) * ux + (velocities[i, 1] - velocities[j, 1]) * uy
            if u > 0.0:
                impulse = min(u, 0.5 * step * one_minus_q * (sigma * u + beta * u * u))
            else:
                impulse = max(u, 0.5 * step * one_minus_q * (sigma * u - beta * u * u))

            velocities[i, 0] -= impulse * ux
            velocities[i, 1] -= impulse * uy
            velocities[j, 0] += impulse * ux
            velocities[j, 1] += impulse * uy


@numba.jit(nopython=True)
def _compute_densities_jit(positions, densities, near_densities, h,
                           origin_x, origin_y, cell_size, grid_width, grid_height, grid_offsets, grid_indices, scratch):
    """Density and near density from the (1 - r/h)^2 and (1 - r/h)^3 kernels."""
    h_sq = h * h
    densities[:] = 0.0
    near_densities[:] = 0.0
    for i in range(positions.shape[0]):
        count = _gather_neighbors_jit(i, positions, origin_x, origin_y, cell_size, grid_width, grid_height,
                                      grid_offsets, grid_indices, scratch)
        for k in range(count):
            j = scratch[k]
            dx = positions[i, 0] - positions[j, 0]
            dy = positions[i, 1] - positions[j, 1]
            r_sq = dx * dx + dy * dy
            if r_sq <= 0.0 or r_sq > h_sq:
                continue

            a = 1.0 - math.sqrt(r_sq) / h
            a_sq = a * a
            a_cube = a_sq * a
            densities[i] += a_sq
            densities[j] += a_sq
            near_densities[i] += a_cube
            near_densities[j] += a_cube


@numba.jit(nopython=True)
def _resolve_capsule_collisions_jit(positions, capsules, damping):
    """
    Pushes particles out of capsules along the outward normal by a fraction
    `damping` of the penetration depth. Capsules are rows of
    (p0x, p0y, p1x, p1y, radius) and are applied in order.
    """
    for i in range(positions.shape[0]):
        for c in range(capsules.shape[0]):
            p0x = capsules[c, 0]
            p0y = capsules[c, 1]
            p1x = capsules[c, 2]
            p1y = capsules[c, 3]
            radius = capsules[c, 4]

            x = positions[i, 0]
            y = positions[i, 1]
            qx, qy = _closest_point_on_segment(x, y, p0x, p0y, p1x, p1y)
            dx = x - qx
            dy = y - qy
            dist = math.sqrt(dx * dx + dy * dy)
            penetration = dist - radius
            if penetration >= 0.0:
                continue

            if dist > 0.0:
                nx = dx / dist
                ny = dy / dist
            else:
                # On the segment itself: leave along the segment's perpendicular.
                ex = p1x - p0x
                ey = p1y - p0y
                seg_len = math.sqrt(ex * ex + ey * ey)
                if seg_len > 0.0:
                    nx = -ey / seg_len
                    ny = ex / seg_len
                else:
                    nx = 0.0
                    ny = -1.0

            push = -penetration * damping
            positions[i, 0] += nx * push
            positions[i, 1] += ny * push


@numba.jit(nopython=True)
def _relax_double_density_jit(positions, densities, near_densities, displacements, h,
                              stiffness, near_stiffness, rest_density, step,
                              origin_x, origin_y, cell_size, grid_width, grid_height, grid_offsets, grid_indices, scratch):
    """
    Double density relaxation (Clavet et al. 2005, algorithm 2). The
    displacements are accumulated into `displacements` and applied at the
    start of the next frame.
    """
    h_sq = h * h
    step_sq = step * step
    for i in range(positions.shape[0]):
        pressure = stiffness * (densities[i] - rest_density)
        near_pressure = near_stiffness * near_densities[i]

        count = _gather_neighbors_jit(i, positions, origin_x, origin_y, cell_size, grid_width, grid_height,
                                      grid_offsets, grid_indices, scratch)
        for k in range(count):
            j = scratch[k]
            dx = positions[i, 0] - positions[j, 0]
            dy = positions[i, 1] - positions[j, 1]
            r_sq = dx * dx + dy * dy
            if r_sq <= 0.0 or r_sq > h_sq:
                continue

            r = math.sqrt(r_sq)
            a = 1.0 - r / h
            d = 0.5 * step_sq * (pressure * a + near_pressure * a * a)
            shift_x = dx / r * d
            shift_y = dy / r * d
            displacements[i, 0] += shift_x
            displacements[i, 1] += shift_y
            displacements[j, 0] -= shift_x
            displacements[j, 1] -= shift_y


def _read_only(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class FluidSimulation:
    """
    Owns every particle, capsule and emitter and advances them one frame at a
    time with the viscoelastic SPH prediction-relaxation scheme.

    Data Contract:
    - Inputs:
        - config (dict): The 'simulation' section of the config file. All keys
          are optional and fall back to the values in constants.py.
        - rng (np.random.Generator): Seeded generator used for emission jitter.
    - Outputs: None. `update` mutates the internal state; renderers read it
      through the read-only `particles`, `capsules`, `pending_capsule` and
      `emitters` accessors between updates.
    - Side Effects: Logs lifecycle and editing events to the "fluid_sim" logger.
    - Invariants:
        - All particle arrays share the same length (num_particles).
        - Densities are recomputed from zero every frame.
        - Pairwise passes only ever apply equal and opposite contributions.
        - Nothing may touch the simulation while `update` runs.
    """
    def __init__(self, config: dict = None, rng: np.random.Generator = None):
        config = config or {}
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()

        self.h = constants.SUPPORT_RADIUS
        self.world_min = _read_only(np.array(constants.SCALED_WORLD_MIN, dtype=np.float64))
        self.world_max = _read_only(np.array(constants.SCALED_WORLD_MAX, dtype=np.float64))

        # --- Live tunables ---
        self.gravity = config.get('gravity', constants.GRAVITY)
        self.solver_step = config.get('solver_step', constants.SOLVER_STEP)
        self.limit_particles = config.get('limit_particles', constants.LIMIT_PARTICLES)
        self.max_particles = config.get('max_particles', constants.MAX_PARTICLES)
        self.emitter_settings = dict(config.get('emitter', {}))

        self.viewport_size = (0, 0)
        self.frame = 0
        self._updating = False

        self._clear_particles()
        self._capsules = []
        self._capsule_rows = np.zeros((0, 5), dtype=np.float64)
        self._pending_capsule = None
        self._emitters = []

        self.grid = SpatialHashGrid(self.h, self.world_min, self.world_max)

        if config.get('default_scene', True):
            self._build_default_scene()

        logger.info(f"FluidSimulation created with {len(self._capsules)} capsules and "
                    f"{len(self._emitters)} emitters (h={self.h}, gravity={self.gravity}).")

    # --- State management ---

    def _clear_particles(self):
        self.positions = np.zeros((0, 2), dtype=np.float64)
        self.velocities = np.zeros((0, 2), dtype=np.float64)
        self.old_positions = np.zeros((0, 2), dtype=np.float64)
        self.displacements = np.zeros((0, 2), dtype=np.float64)
        self.densities = np.zeros(0, dtype=np.float64)
        self.near_densities = np.zeros(0, dtype=np.float64)
        self.is_new = np.zeros(0, dtype=np.bool_)
        self.colors = np.zeros((0, 3), dtype=np.uint8)

    def _build_default_scene(self):
        """A walled basin with three slanted obstacles and one emitter."""
        world_min, world_max = constants.WORLD_MIN, constants.WORLD_MAX
        frame = [
            (world_min, (world_max[0], world_min[1])),
            ((world_min[0] * 0.7, world_max[1]), world_max),
            (world_min, (world_min[0], world_max[1])),
            ((world_max[0], world_min[1]), world_max),
        ]
        for p0, p1 in frame:
            self._capsules.append(Capsule(p0, p1, constants.FRAME_RADIUS))

        obstacles = [
            ((0.1, 0.8), (0.3, 0.5)),
            ((0.6, 0.0), (0.3, 0.3)),
            ((-0.5, -0.3), (0.2, 0.4)),
        ]
        for p0, p1 in obstacles:
            self._capsules.append(Capsule(p0, p1, constants.CAPSULE_RADIUS))
        self._capsules_changed()

        self._emitters.append(Emitter((-0.1, -0.15), self.emitter_settings))

    def _capsules_changed(self):
        rows = [capsule.as_row() for capsule in self._capsules]
        self._capsule_rows = np.array(rows, dtype=np.float64).reshape(-1, 5)

    def _keep_particles(self, mask: np.ndarray):
        self.positions = self.positions[mask]
        self.velocities = self.velocities[mask]
        self.old_positions = self.old_positions[mask]
        self.displacements = self.displacements[mask]
        self.densities = self.densities[mask]
        self.near_densities = self.near_densities[mask]
        self.is_new = self.is_new[mask]
        self.colors = self.colors[mask]

    def add_particles(self, particles):
        """Appends Particle records to the particle arrays."""
        if not particles:
            return
        self.positions = np.vstack([self.positions, [p.position for p in particles]])
        self.velocities = np.vstack([self.velocities, [p.velocity for p in particles]])
        self.old_positions = np.vstack([self.old_positions, [p.o for p in particles]])
        self.displacements = np.vstack([self.displacements, [p.f for p in particles]])
        self.densities = np.concatenate([self.densities, [p.density for p in particles]])
        self.near_densities = np.concatenate([self.near_densities, [p.near_density for p in particles]])
        self.is_new = np.concatenate([self.is_new, np.array([p.is_new for p in particles], dtype=np.bool_)])
        self.colors = np.vstack([self.colors, np.array([p.color for p in particles], dtype=np.uint8)])

    @contextmanager
    def _exclusive(self, operation: str):
        if self._updating:
            raise SimulationBusyError(f"Cannot {operation} while an update is in progress.")
        self._updating = True
        try:
            yield
        finally:
            self._updating = False

    def _ensure_idle(self, operation: str):
        if self._updating:
            raise SimulationBusyError(f"Cannot {operation} while an update is in progress.")

    # --- Read-only accessors for the renderer ---

    @property
    def num_particles(self):
        return self.positions.shape[0]

    @property
    def particles(self) -> ParticleFrame:
        self._ensure_idle("read particles")
        return ParticleFrame(
            positions=_read_only(self.positions),
            velocities=_read_only(self.velocities),
            densities=_read_only(self.densities),
            near_densities=_read_only(self.near_densities),
            colors=_read_only(self.colors),
            radius=constants.PARTICLE_RADIUS,
        )

    @property
    def capsules(self):
        self._ensure_idle("read capsules")
        return tuple(self._capsules)

    @property
    def pending_capsule(self):
        self._ensure_idle("read the pending capsule")
        return self._pending_capsule

    @property
    def emitters(self):
        self._ensure_idle("read emitters")
        return tuple(self._emitters)

    def get_particle(self, index: int) -> Particle:
        """A detached Particle record holding the current state of one particle."""
        self._ensure_idle("read a particle")
        particle = Particle(self.positions[index], self.velocities[index], self.colors[index].tolist(), scale=1.0)
        particle.o = self.old_positions[index].copy()
        particle.f = self.displacements[index].copy()
        particle.density = float(self.densities[index])
        particle.near_density = float(self.near_densities[index])
        particle.is_new = bool(self.is_new[index])
        return particle

    # --- Frame update ---

    def update(self, viewport_width: int, viewport_height: int, pointer_world_pos=None, dt: float = 0.0):
        """
        Runs one full frame: emission, culling, then the integration pipeline.

        - Inputs:
            - viewport_width, viewport_height: size of the caller's view, kept for the renderer.
            - pointer_world_pos: scaled world position of the pointer, or None.
              A pending capsule's second endpoint follows it.
            - dt (float): elapsed seconds, drives the emitter timers.
        """
        with self._exclusive("update"):
            if self._pending_capsule is not None and pointer_world_pos is not None:
                self._pending_capsule = self._pending_capsule.with_p1(to_world_vector(pointer_world_pos, 1.0))
            self.viewport_size = (viewport_width, viewport_height)

            self.emit(dt)
            self.cull()
            self.step()
            self.frame += 1

    def emit(self, dt: float):
        """
        Advances every emitter's timer and fires those whose period elapsed,
        three particles per emitter, unless the particle cap is reached.
        """
        spawned = []
        for emitter in self._emitters:
            if not emitter.tick(dt):
                continue
            if self.limit_particles and self.num_particles + len(spawned) >= self.max_particles:
                logger.debug(f"Particle cap of {self.max_particles} reached; emission suppressed.")
                continue

            emitter.advance_angle()
            direction = emitter.jet_direction()
            perpendicular = np.array([-direction[1], direction[0]])
            velocity = direction * (emitter.strength * constants.WORLD_SCALE)
            jitter = emitter.jitter * constants.JITTER_UNIT * constants.WORLD_SCALE

            for offset in constants.EMISSION_OFFSETS:
                position = emitter.position + perpendicular * (offset * self.h)
                noise = self.rng.uniform(-jitter, jitter, size=2)
                spawned.append(Particle(position, velocity + noise, emitter.color, scale=1.0))
            emitter.timer = 0.0

        if spawned:
            self.add_particles(spawned)
            logger.debug(f"Emitted {len(spawned)} particles. New count: {self.num_particles}.")

    def cull(self):
        """Removes every particle strictly outside the world rectangle."""
        inside = np.all((self.positions >= self.world_min) & (self.positions <= self.world_max), axis=1)
        removed = self.num_particles - int(np.count_nonzero(inside))
        if removed:
            self._keep_particles(inside)
            logger.debug(f"{removed} particle(s) left the world. New count: {self.num_particles}.")
        return removed

    def step(self):
        """
        The prediction-relaxation integration pipeline. The order of the
        passes is fixed: the relaxation at the end produces the displacements
        that the next frame applies first.
        """
        if self.num_particles == 0:
            self.grid.rebuild(self.positions)
            return

        # 1-3. Apply last frame's relaxation, re-derive velocity, add gravity.
        self.positions += self.displacements
        self.displacements.fill(0.0)
        settled = ~self.is_new
        self.velocities[settled] = self.positions[settled] - self.old_positions[settled]
        self.is_new.fill(False)
        self.velocities[:, 1] += self.gravity

        # 4. Viscosity, against a grid built from the predicted positions.
        self.grid.rebuild(self.positions)
        self.apply_viscosity()

        # 5-6. Snapshot and advance.
        self.old_positions[:] = self.positions
        self.positions += self.velocities

        # 7-9. Everything below sees the advanced positions.
        self.grid.rebuild(self.positions)
        self.compute_densities()
        self.resolve_collisions()
        self.relax_densities()

    def apply_viscosity(self):
        _apply_viscosity_jit(
            self.positions, self.velocities, self.h,
            constants.VISCOSITY_SIGMA, constants.VISCOSITY_BETA, self.solver_step,
            *self.grid.kernel_args(), self.grid.scratch
        )

    def compute_densities(self):
        _compute_densities_jit(
            self.positions, self.densities, self.near_densities, self.h,
            *self.grid.kernel_args(), self.grid.scratch
        )

    def resolve_collisions(self):
        _resolve_capsule_collisions_jit(self.positions, self._capsule_rows, constants.COLLISION_DAMPING)

    def relax_densities(self):
        _relax_double_density_jit(
            self.positions, self.densities, self.near_densities, self.displacements, self.h,
            constants.STIFFNESS, constants.NEAR_STIFFNESS, constants.REST_DENSITY, self.solver_step,
            *self.grid.kernel_args(), self.grid.scratch
        )

    # --- Editing operations ---
    # Positions are in the scaled world space; capsule radii in raw world units.

    def reset(self):
        """Removes every particle. Obstacles and emitters stay in place."""
        with self._exclusive("reset"):
            removed = self.num_particles
            self._clear_particles()
            logger.info(f"Simulation reset; {removed} particle(s) removed.")

    def add_or_commit_capsule(self, world_pos, radius: float = constants.CAPSULE_RADIUS) -> Capsule:
        """
        The first call starts a pending capsule at world_pos whose second
        endpoint follows the pointer passed to `update`. The second call commits
        it to the obstacle set. Returns the pending or the committed capsule.
        """
        with self._exclusive("edit capsules"):
            if self._pending_capsule is not None:
                capsule = self._pending_capsule
                self._pending_capsule = None
                self._capsules.append(capsule)
                self._capsules_changed()
                logger.info(f"Committed {capsule}. Capsule count: {len(self._capsules)}.")
                return capsule

            position = to_world_vector(world_pos, 1.0)
            self._pending_capsule = Capsule(position, position, radius * constants.WORLD_SCALE,
                                            constants.CAPSULE_COLOR, scale=1.0)
            logger.info(f"Started capsule at {position.tolist()}.")
            return self._pending_capsule

    def cancel_pending_capsule(self):
        with self._exclusive("edit capsules"):
            if self._pending_capsule is not None:
                logger.info("Pending capsule cancelled.")
            self._pending_capsule = None

    def remove_capsule_at(self, world_pos) -> int:
        """Removes every capsule containing world_pos and returns how many were removed."""
        with self._exclusive("edit capsules"):
            position = to_world_vector(world_pos, 1.0)
            kept = [capsule for capsule in self._capsules if capsule.eval(position) > 0]
            removed = len(self._capsules) - len(kept)
            if removed:
                self._capsules = kept
                self._capsules_changed()
                logger.info(f"Removed {removed} capsule(s) at {position.tolist()}.")
            return removed

    def add_emitter(self, world_pos) -> Emitter:
        with self._exclusive("edit emitters"):
            emitter = Emitter(world_pos, self.emitter_settings, scale=1.0)
            self._emitters.append(emitter)
            logger.info(f"Added {emitter}. Emitter count: {len(self._emitters)}.")
            return emitter

    def find_emitter(self, world_pos) -> int:
        """Index of the first emitter whose disc contains world_pos, or -1."""
        self._ensure_idle("find emitters")
        position = to_world_vector(world_pos, 1.0)
        for i, emitter in enumerate(self._emitters):
            if emitter.eval(position) <= 0:
                return i
        return -1

    def remove_emitter_at(self, world_pos):
        """Removes the emitter under world_pos and returns it, or None."""
        index = self.find_emitter(world_pos)
        if index == -1:
            return None
        with self._exclusive("edit emitters"):
            emitter = self._emitters.pop(index)
            logger.info(f"Removed {emitter}. Emitter count: {len(self._emitters)}.")
            return emitter

    def select_emitter_at(self, world_pos):
        """The emitter under world_pos, or None. Its tunables may be edited in place."""
        index = self.find_emitter(world_pos)
        if index == -1:
            return None
        return self._emitters[index]
