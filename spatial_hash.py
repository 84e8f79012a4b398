# spatial_hash.py

import math
import logging
import numba
import numpy as np

logger = logging.getLogger("fluid_sim")


@numba.jit(nopython=True)
def _cell_coords(x, y, origin_x, origin_y, cell_size, grid_width, grid_height):
    """Cell of a position, clipped to the grid so out-of-world queries stay valid."""
    cell_x = int(math.floor((x - origin_x) / cell_size))
    cell_y = int(math.floor((y - origin_y) / cell_size))
    if cell_x < 0:
        cell_x = 0
    elif cell_x >= grid_width:
        cell_x = grid_width - 1
    if cell_y < 0:
        cell_y = 0
    elif cell_y >= grid_height:
        cell_y = grid_height - 1
    return cell_x, cell_y


@numba.jit(nopython=True)
def _bin_particles_jit(positions, origin_x, origin_y, cell_size, grid_width, grid_height, grid_offsets, grid_indices):
    """
    Counting-sort of particle indices by cell into the flattened layout:
    grid_indices[grid_offsets[c]:grid_offsets[c + 1]] are the particles of cell c.
    """
    num_particles = positions.shape[0]
    num_cells = grid_width * grid_height
    particle_cells = np.empty(num_particles, dtype=np.int64)
    counts = np.zeros(num_cells, dtype=np.int64)

    for i in range(num_particles):
        cell_x, cell_y = _cell_coords(positions[i, 0], positions[i, 1], origin_x, origin_y,
                                      cell_size, grid_width, grid_height)
        cell_idx = cell_y * grid_width + cell_x
        particle_cells[i] = cell_idx
        counts[cell_idx] += 1

    grid_offsets[0] = 0
    for cell_idx in range(num_cells):
        grid_offsets[cell_idx + 1] = grid_offsets[cell_idx] + counts[cell_idx]

    placement = grid_offsets[:num_cells].copy()
    for i in range(num_particles):
        cell_idx = particle_cells[i]
        grid_indices[placement[cell_idx]] = i
        placement[cell_idx] += 1


@numba.jit(nopython=True)
def _gather_neighbors_jit(p_idx, positions, origin_x, origin_y, cell_size, grid_width, grid_height, grid_offsets, grid_indices, out):
    """
    Writes the indices of every particle in the 3x3 block of cells around
    particle p_idx into `out` (excluding p_idx) and returns how many were written.
    """
    cell_x, cell_y = _cell_coords(positions[p_idx, 0], positions[p_idx, 1], origin_x, origin_y,
                                  cell_size, grid_width, grid_height)
    count = 0
    for dy in range(-1, 2):
        check_y = cell_y + dy
        if check_y < 0 or check_y >= grid_height:
            continue
        for dx in range(-1, 2):
            check_x = cell_x + dx
            if check_x < 0 or check_x >= grid_width:
                continue
            cell_idx = check_y * grid_width + check_x
            for k in range(grid_offsets[cell_idx], grid_offsets[cell_idx + 1]):
                other = grid_indices[k]
                if other != p_idx:
                    out[count] = other
                    count += 1
    return count


class SpatialHashGrid:
    """
    Uniform grid over the world rectangle for broad-phase neighbor queries.

    The cell size equals the interaction radius h, so every particle within h
    of p lives in p's cell or one of its 8 neighbors. Buckets are stored in a
    Numba-friendly flattened format (offsets + sorted indices) instead of
    Python lists.

    Data Contract:
    - Inputs:
        - cell_size (float): the support radius h.
        - world_min, world_max: corners of the scaled world rectangle.
    - Invariants: `rebuild` must be called after positions change and before
      the next query; queries return candidates only, callers filter by exact
      distance.
    """
    def __init__(self, cell_size: float, world_min, world_max):
        if cell_size <= 0:
            raise ValueError(f"Cell size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self.origin = np.array(world_min, dtype=np.float64)
        extent = np.array(world_max, dtype=np.float64) - self.origin
        self.grid_width = max(1, int(np.ceil(extent[0] / self.cell_size)))
        self.grid_height = max(1, int(np.ceil(extent[1] / self.cell_size)))

        num_cells = self.grid_width * self.grid_height
        self.grid_offsets = np.zeros(num_cells + 1, dtype=np.int64)
        self.grid_indices = np.zeros(0, dtype=np.int64)
        self.positions = np.zeros((0, 2), dtype=np.float64)
        # Scratch buffer the neighbor gather writes into; sized to the particle count.
        self.scratch = np.zeros(0, dtype=np.int64)

        logger.info(f"Spatial grid initialized with cell size {self.cell_size} "
                    f"({self.grid_width}x{self.grid_height} cells).")

    @property
    def num_particles(self):
        return self.positions.shape[0]

    def kernel_args(self):
        """The grid state in the argument order the Numba pair kernels expect."""
        return (self.origin[0], self.origin[1], self.cell_size, self.grid_width, self.grid_height,
                self.grid_offsets, self.grid_indices)

    def rebuild(self, positions: np.ndarray):
        """Discards the previous buckets and bins every position into its cell."""
        num_particles = positions.shape[0]
        if self.grid_indices.shape[0] != num_particles:
            self.grid_indices = np.zeros(num_particles, dtype=np.int64)
            self.scratch = np.zeros(num_particles, dtype=np.int64)
        self.positions = positions
        _bin_particles_jit(positions, self.origin[0], self.origin[1], self.cell_size,
                           self.grid_width, self.grid_height, self.grid_offsets, self.grid_indices)

    def neighbors_of(self, p_idx: int) -> np.ndarray:
        """
        Returns the indices of all particles in the 3x3 cell block around
        particle p_idx, never p_idx itself. A superset of the particles within h.
        """
        count = _gather_neighbors_jit(p_idx, self.positions, *self.kernel_args(), self.scratch)
        return self.scratch[:count].copy()

    def cell_of(self, position):
        """The (clipped) cell coordinates of a world position."""
        return _cell_coords(float(position[0]), float(position[1]), self.origin[0], self.origin[1],
                            self.cell_size, self.grid_width, self.grid_height)
