"""
Cached spatial neighbor lookup.

The index is rebuilt from a position snapshot every `refresh_period`
ticks and reused in between, so neighbor sets may be a few ticks stale.
"""

import numpy as np
from scipy.spatial import cKDTree


class NeighborIndex:
    """
    Nearest-first neighbor sets, capped at `max_neighbors` per particle.

    Order is by distance, and is deterministic for a fixed population
    ordering and fixed positions.
    """

    def __init__(self, max_neighbors: int = 15, radius: float = 3.0, refresh_period: int = 5):
        self.max_neighbors = max_neighbors
        self.radius = radius
        self.refresh_period = refresh_period

        self._indices: list[np.ndarray] = []
        self._distances: list[np.ndarray] = []
        self.built_at_tick: int | None = None

    @property
    def size(self) -> int:
        return len(self._indices)

    def is_due(self, tick: int) -> bool:
        if self.built_at_tick is None:
            return True
        return tick - self.built_at_tick >= self.refresh_period

    def rebuild(self, positions: np.ndarray, tick: int = 0):
        """
        Recompute every particle's neighbor set.

        Args:
            positions: (N, 3) snapshot of particle positions.
            tick: Tick number the snapshot belongs to.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = len(positions)
        self.built_at_tick = tick

        if n == 0 or self.max_neighbors == 0:
            self._indices = [np.zeros(0, dtype=np.intp) for _ in range(n)]
            self._distances = [np.zeros(0) for _ in range(n)]
            return

        # One extra slot for the particle itself.
        k = min(self.max_neighbors + 1, n)
        tree = cKDTree(positions)
        distances, indices = tree.query(positions, k=k, distance_upper_bound=self.radius)
        distances = np.asarray(distances).reshape(n, -1)
        indices = np.asarray(indices).reshape(n, -1)

        self._indices = []
        self._distances = []
        for i in range(n):
            keep = (indices[i] != i) & (indices[i] < n) & (distances[i] < self.radius)
            self._indices.append(indices[i][keep][: self.max_neighbors].astype(np.intp))
            self._distances.append(distances[i][keep][: self.max_neighbors])

    def query(self, positions: np.ndarray, index: int, radius: float) -> np.ndarray:
        """
        Fresh nearest-first neighbors of particle `index` within `radius`.

        Ignores the cached sets, so any radius is honoured. The result is
        still capped at `max_neighbors`.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = len(positions)
        if n < 2 or self.max_neighbors == 0:
            return np.zeros(0, dtype=np.intp)

        k = min(self.max_neighbors + 1, n)
        distances, indices = cKDTree(positions).query(positions[index], k=k, distance_upper_bound=radius)
        distances = np.atleast_1d(distances)
        indices = np.atleast_1d(indices)
        keep = (indices != index) & (indices < n) & (distances < radius)
        return indices[keep][: self.max_neighbors].astype(np.intp)

    def indices_of(self, index: int) -> np.ndarray:
        if not self._indices:
            return np.zeros(0, dtype=np.intp)
        return self._indices[index]

    def neighbors_of(self, index: int, radius: float | None = None) -> np.ndarray:
        """
        Cached neighbor indices of particle `index` within `radius`.

        Distances are those measured at the last rebuild. A radius at or
        beyond the index radius returns the whole cached set; use `query`
        to search wider.
        """
        indices = self.indices_of(index)
        if radius is None or radius >= self.radius or len(indices) == 0:
            return indices
        return indices[self._distances[index] < radius]
