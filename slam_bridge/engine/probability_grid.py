"""
Log-odds probability grid with vectorized ray casting.

Shared by the local engine (submap snapshots) and the occupancy grid builder
(map-frame rasterization). Geometry is planar: only x/y of origins and points
are used.

Cell (row, col) covers [corner + (col, row) * resolution, + resolution).
"""

from __future__ import annotations

import math
from typing import Iterable, Tuple

import numpy as np
from scipy.special import expit

from slam_bridge.common import constants


def grid_bounds(
    xy_sets: Iterable[np.ndarray],
    resolution: float,
    padding_cells: int = constants.GRID_PADDING_CELLS,
) -> Tuple[np.ndarray, int, int]:
    """
    Bounding grid covering every (N, 2) array in xy_sets.

    Returns (corner_xy, width, height). Raises ValueError when all sets are empty.
    """
    stacked = [np.asarray(s, dtype=float).reshape(-1, 2) for s in xy_sets]
    stacked = [s for s in stacked if s.shape[0] > 0]
    if not stacked:
        raise ValueError("Cannot compute grid bounds of an empty point set")
    all_xy = np.concatenate(stacked, axis=0)
    lo = all_xy.min(axis=0)
    hi = all_xy.max(axis=0)
    pad = padding_cells * resolution
    corner = np.floor((lo - pad) / resolution) * resolution
    extent = (hi + pad) - corner
    width = max(1, int(math.ceil(extent[0] / resolution)) + 1)
    height = max(1, int(math.ceil(extent[1] / resolution)) + 1)
    return corner, width, height


class ProbabilityGrid:
    """
    Fixed-extent log-odds grid.

    Each insert() applies at most one hit or one miss per cell, hits win
    over misses within the same insertion.
    """

    def __init__(
        self,
        resolution: float,
        corner: np.ndarray,
        width: int,
        height: int,
        log_hit: float = constants.LOG_ODDS_HIT,
        log_miss: float = constants.LOG_ODDS_MISS,
        log_min: float = constants.LOG_ODDS_MIN,
        log_max: float = constants.LOG_ODDS_MAX,
    ) -> None:
        if resolution <= 0.0:
            raise ValueError(f"resolution must be > 0, got {resolution}")
        if width <= 0 or height <= 0:
            raise ValueError(f"grid size must be positive, got {width}x{height}")
        self.resolution = float(resolution)
        self.corner = np.asarray(corner, dtype=float).reshape(2)
        self.width = int(width)
        self.height = int(height)
        self._log_hit = float(log_hit)
        self._log_miss = float(log_miss)
        self._log_min = float(log_min)
        self._log_max = float(log_max)
        self._log_odds = np.zeros((self.height, self.width), dtype=np.float32)
        self._observed = np.zeros((self.height, self.width), dtype=bool)

    @classmethod
    def covering(cls, xy_sets: Iterable[np.ndarray], resolution: float) -> "ProbabilityGrid":
        corner, width, height = grid_bounds(xy_sets, resolution)
        return cls(resolution, corner, width, height)

    # -------------------------------------------------------------------------

    def _to_cells(self, xy: np.ndarray) -> np.ndarray:
        """(N, 2) metric -> (N, 2) integer [row, col]."""
        ij = np.floor((xy - self.corner) / self.resolution).astype(np.int64)
        return ij[:, ::-1]

    def _in_bounds(self, rc: np.ndarray) -> np.ndarray:
        return (rc[:, 0] >= 0) & (rc[:, 0] < self.height) & (rc[:, 1] >= 0) & (rc[:, 1] < self.width)

    def _flat(self, rc: np.ndarray) -> np.ndarray:
        rc = rc[self._in_bounds(rc)]
        return rc[:, 0] * self.width + rc[:, 1]

    def insert(
        self,
        origin_xy: np.ndarray,
        points_xy: np.ndarray,
        samples_per_chunk: int = constants.RAY_SAMPLES_PER_CHUNK,
    ) -> None:
        """
        Cast rays from origin to every point; endpoints are hits.

        Rays are sampled at half-cell spacing in chunks of at most
        samples_per_chunk positions, so peak memory is bounded by the chunk
        size and the grid, not by len(points) * ray length.
        """
        points_xy = np.asarray(points_xy, dtype=float).reshape(-1, 2)
        if points_xy.shape[0] == 0:
            return
        origin_xy = np.asarray(origin_xy, dtype=float).reshape(2)

        n_cells = self.width * self.height
        hit_mask = np.zeros(n_cells, dtype=bool)
        hit_mask[self._flat(self._to_cells(points_xy))] = True

        miss_mask = np.zeros(n_cells, dtype=bool)
        deltas = points_xy - origin_xy
        lengths = np.linalg.norm(deltas, axis=1)
        n_steps = int(math.ceil(float(lengths.max()) / (0.5 * self.resolution)))
        if n_steps > 0:
            # Sample positions exclude the endpoint itself.
            fractions = np.arange(n_steps, dtype=float) / n_steps
            rays_per_chunk = max(1, int(samples_per_chunk) // n_steps)
            for start in range(0, deltas.shape[0], rays_per_chunk):
                chunk = deltas[start:start + rays_per_chunk]
                samples = origin_xy + fractions[None, :, None] * chunk[:, None, :]
                miss_mask[self._flat(self._to_cells(samples.reshape(-1, 2)))] = True
        miss_mask &= ~hit_mask

        hits = np.flatnonzero(hit_mask)
        misses = np.flatnonzero(miss_mask)
        flat_lo = self._log_odds.reshape(-1)
        flat_obs = self._observed.reshape(-1)
        flat_lo[misses] = np.clip(flat_lo[misses] + self._log_miss, self._log_min, self._log_max)
        flat_lo[hits] = np.clip(flat_lo[hits] + self._log_hit, self._log_min, self._log_max)
        flat_obs[misses] = True
        flat_obs[hits] = True

    # -------------------------------------------------------------------------

    @property
    def observed(self) -> np.ndarray:
        return self._observed.copy()

    def probabilities(self) -> np.ndarray:
        """Occupancy probability per cell (0.5 where unobserved)."""
        return expit(self._log_odds.astype(np.float64))

    def occupancy(self) -> np.ndarray:
        """int8 (height, width): -1 unknown, 0..100 occupied."""
        occ = np.rint(self.probabilities() * constants.OCCUPANCY_MAX).astype(np.int8)
        occ[~self._observed] = constants.OCCUPANCY_UNKNOWN
        return occ

    def intensities(self) -> np.ndarray:
        """uint8 (height, width): 0 unknown, 1..255 increasing occupancy."""
        vals = 1 + np.rint(self.probabilities() * 254.0).astype(np.uint8)
        vals[~self._observed] = constants.SUBMAP_CELL_UNKNOWN
        return vals
