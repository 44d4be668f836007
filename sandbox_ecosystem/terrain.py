"""
Terrain Field: cached height/water sampling.

The sandbox's terrain and water surface come from an expensive external
source (GPU read-back of the water simulation). TerrainField pulls both
grids on a throttled cadence and answers point queries from the cache
with bilinear interpolation and hazard classification.

Two backends sit behind one query interface:
- TerrainField: cached grids, water depth, Normal/Water/Lava classification
- HeightFunctionTerrain: direct height_at(x, y) callable, elevation only

TerrainQuery selects between them by an explicit backend preference.
Queries never print or touch external I/O; only refresh() reads the source.
"""

import math
import numpy as np
from typing import Callable, List, Optional, Sequence, Tuple

from .data_types import Bounds, TerrainGrids, TerrainSample, TerrainType
from .constants import (
    LAVA_THRESHOLD_DEFAULT,
    WATER_DEPTH_THRESHOLD_DEFAULT,
    TERRAIN_UPDATE_FREQUENCY_DEFAULT,
    TERRAIN_BACKEND_GRID,
    TERRAIN_BACKEND_HEIGHT_FUNCTION,
    TERRAIN_BACKENDS,
)


def classify(terrain_height: float, water_depth: float,
             lava_threshold: float, water_depth_threshold: float) -> TerrainType:
    """Lava wins over water; water needs depth strictly above threshold"""
    if terrain_height < lava_threshold:
        return TerrainType.LAVA
    if water_depth > water_depth_threshold:
        return TerrainType.WATER
    return TerrainType.NORMAL


def sample_bilinear(grid: np.ndarray, gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a 2D grid at fractional grid coordinates.

    Coordinates are clamped to the grid first, so points beyond the
    border read the nearest edge cells.

    Args:
        grid: (H, W) array, row = y, column = x
        gx: Fractional column coordinates (any shape)
        gy: Fractional row coordinates (same shape as gx)

    Returns:
        Interpolated values with the shape of gx
    """
    height, width = grid.shape
    gx = np.clip(np.asarray(gx, dtype=np.float64), 0.0, width - 1)
    gy = np.clip(np.asarray(gy, dtype=np.float64), 0.0, height - 1)

    x0 = np.floor(gx).astype(np.int64)
    y0 = np.floor(gy).astype(np.int64)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)
    fx = gx - x0
    fy = gy - y0

    v00 = grid[y0, x0]
    v10 = grid[y0, x1]
    v01 = grid[y1, x0]
    v11 = grid[y1, x1]

    v0 = v00 * (1.0 - fx) + v10 * fx
    v1 = v01 * (1.0 - fx) + v11 * fx
    return v0 * (1.0 - fy) + v1 * fy


class TerrainField:
    """
    Cached, throttled-refresh terrain and water sampler.

    Before the first successful refresh every query returns a fallback
    sample (elevation = midpoint of the elevation range, no water,
    Normal, is_valid=False). After it, is_valid stays True and queries
    serve the most recent cached grids.
    """

    def __init__(
        self,
        lava_threshold: float = LAVA_THRESHOLD_DEFAULT,
        water_depth_threshold: float = WATER_DEPTH_THRESHOLD_DEFAULT,
        update_frequency: int = TERRAIN_UPDATE_FREQUENCY_DEFAULT,
        elevation_range: Optional[Tuple[float, float]] = None
    ):
        """
        Args:
            lava_threshold: Terrain elevation below which is lava
            water_depth_threshold: Water depth above which is water
            update_frequency: Pull grids every N refresh() calls (>= 1)
            elevation_range: (min_z, max_z) used for the fallback midpoint
                until grids supply their own domain
        """
        self.lava_threshold = lava_threshold
        self.water_depth_threshold = water_depth_threshold
        self._update_frequency = max(1, int(update_frequency))
        self._update_counter = 0

        bounds = Bounds()
        if elevation_range is None:
            elevation_range = (bounds.min_z, bounds.max_z)

        self._terrain: Optional[np.ndarray] = None
        self._water: Optional[np.ndarray] = None
        self._domain_min = np.array([bounds.min_x, bounds.min_y, elevation_range[0]], dtype=np.float64)
        self._domain_max = np.array([bounds.max_x, bounds.max_y, elevation_range[1]], dtype=np.float64)
        self._data_valid = False

        # Refresh bookkeeping for observability (read by callers, never printed here)
        self.refresh_count = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def update_frequency(self) -> int:
        return self._update_frequency

    @update_frequency.setter
    def update_frequency(self, frames: int):
        self._update_frequency = max(1, int(frames))

    def set_lava_threshold(self, threshold: float):
        self.lava_threshold = threshold

    def set_water_depth_threshold(self, threshold: float):
        self.water_depth_threshold = threshold

    def set_update_frequency(self, frames: int):
        self.update_frequency = frames

    def set_elevation_range(self, min_z: float, max_z: float):
        """Elevation range for the fallback midpoint (before any refresh)"""
        if not self._data_valid:
            self._domain_min[2] = min_z
            self._domain_max[2] = max_z

    @property
    def is_valid(self) -> bool:
        return self._data_valid

    @property
    def domain(self) -> Tuple[np.ndarray, np.ndarray]:
        return self._domain_min.copy(), self._domain_max.copy()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, source) -> bool:
        """
        Pull fresh grids from the source, throttled.

        Only every update_frequency-th call reads the source; the calls in
        between are no-ops. The read blocks until the source returns.

        Args:
            source: Object with read_grids() -> Optional[TerrainGrids]
                (None means the source is not available yet)

        Returns:
            True if the cache was replaced on this call
        """
        self._update_counter += 1
        if self._update_counter < self._update_frequency:
            return False
        self._update_counter = 0

        grids = source.read_grids()
        if grids is None:
            return False

        self.load_grids(grids)
        return True

    def load_grids(self, grids: TerrainGrids):
        """Replace the cache unconditionally (bypasses the throttle)"""
        self._terrain = np.array(grids.terrain, dtype=np.float64)
        self._water = np.array(grids.water, dtype=np.float64)
        self._domain_min = np.array(grids.domain_min, dtype=np.float64)
        self._domain_max = np.array(grids.domain_max, dtype=np.float64)
        self._data_valid = True
        self.refresh_count += 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _fallback_sample(self) -> TerrainSample:
        mid = 0.5 * float(self._domain_min[2] + self._domain_max[2])
        return TerrainSample(
            terrain_height=mid,
            water_surface_height=mid,
            water_depth=0.0,
            terrain_type=TerrainType.NORMAL,
            is_valid=False
        )

    def _to_grid(self, xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """World coordinates -> fractional grid coordinates, clamped to the domain"""
        height, width = self._terrain.shape
        span_x = self._domain_max[0] - self._domain_min[0]
        span_y = self._domain_max[1] - self._domain_min[1]

        nx = (xs - self._domain_min[0]) / span_x if span_x != 0.0 else np.zeros_like(xs)
        ny = (ys - self._domain_min[1]) / span_y if span_y != 0.0 else np.zeros_like(ys)
        nx = np.clip(nx, 0.0, 1.0)
        ny = np.clip(ny, 0.0, 1.0)

        return nx * (width - 1), ny * (height - 1)

    def query(self, x: float, y: float) -> TerrainSample:
        """
        Sample terrain at a world position.

        Args:
            x, y: World coordinates (outside the domain clamps to the border)

        Returns:
            TerrainSample (fallback sample if never refreshed)
        """
        if not self._data_valid:
            return self._fallback_sample()

        gx, gy = self._to_grid(np.float64(x), np.float64(y))
        terrain_height = float(sample_bilinear(self._terrain, gx, gy))
        water_surface = float(sample_bilinear(self._water, gx, gy))
        water_depth = max(0.0, water_surface - terrain_height)

        return TerrainSample(
            terrain_height=terrain_height,
            water_surface_height=water_surface,
            water_depth=water_depth,
            terrain_type=classify(terrain_height, water_depth,
                                  self.lava_threshold, self.water_depth_threshold),
            is_valid=True
        )

    def query_batch(self, points: np.ndarray) -> List[TerrainSample]:
        """
        Sample terrain at many positions with one vectorized interpolation.

        Args:
            points: (N, 2+) array of world positions (x, y, ...)

        Returns:
            List of N TerrainSample in input order
        """
        points = np.asarray(points, dtype=np.float64)
        if not self._data_valid:
            return [self._fallback_sample() for _ in range(len(points))]
        if len(points) == 0:
            return []

        gx, gy = self._to_grid(points[:, 0], points[:, 1])
        terrain_heights = sample_bilinear(self._terrain, gx, gy)
        water_surfaces = sample_bilinear(self._water, gx, gy)
        water_depths = np.maximum(0.0, water_surfaces - terrain_heights)

        samples = []
        for terrain_height, water_surface, water_depth in zip(terrain_heights, water_surfaces, water_depths):
            samples.append(TerrainSample(
                terrain_height=float(terrain_height),
                water_surface_height=float(water_surface),
                water_depth=float(water_depth),
                terrain_type=classify(terrain_height, water_depth,
                                      self.lava_threshold, self.water_depth_threshold),
                is_valid=True
            ))
        return samples


class HeightFunctionTerrain:
    """
    Degenerate backend wrapping a direct height_at(x, y) callable.

    No grid, no interpolation, no water. Samples always classify as
    Normal: this backend supplies elevation only.
    """

    def __init__(self, height_at: Callable[[float, float], float]):
        self.height_at = height_at

    def query(self, x: float, y: float) -> TerrainSample:
        height = float(self.height_at(x, y))
        return TerrainSample(
            terrain_height=height,
            water_surface_height=height,
            water_depth=0.0,
            terrain_type=TerrainType.NORMAL,
            is_valid=math.isfinite(height)
        )

    def query_batch(self, points: np.ndarray) -> List[TerrainSample]:
        return [self.query(float(p[0]), float(p[1])) for p in points]


class GridTerrainSource:
    """
    In-memory terrain source.

    Stands in for the GPU read-back in headless drivers: holds the latest
    grids and hands them out from read_grids().
    """

    def __init__(self, grids: Optional[TerrainGrids] = None):
        self._grids = grids
        self.read_count = 0

    @classmethod
    def from_arrays(
        cls,
        terrain: np.ndarray,
        water: Optional[np.ndarray] = None,
        domain_min: Sequence[float] = (-0.5, -0.4, -20.0),
        domain_max: Sequence[float] = (0.5, 0.4, 100.0)
    ) -> 'GridTerrainSource':
        """
        Build a source from raw arrays.

        Args:
            terrain: (H, W) terrain heights
            water: (H, W) water surface; defaults to the terrain (dry)
        """
        terrain = np.asarray(terrain, dtype=np.float64)
        if water is None:
            water = terrain.copy()
        return cls(TerrainGrids(terrain, water, tuple(domain_min), tuple(domain_max)))

    def set_grids(self, grids: TerrainGrids):
        self._grids = grids

    def read_grids(self) -> Optional[TerrainGrids]:
        self.read_count += 1
        return self._grids


class TerrainQuery:
    """
    Single query interface over the grid and height-function backends.

    Backend preference is explicit:
    - "grid": grid samples when the field is valid, else height function
    - "height_function": elevation from the height function when present;
      water depth and classification still come from a valid grid

    Hazard classification never comes from the height function.
    """

    def __init__(
        self,
        field: Optional[TerrainField] = None,
        height_function: Optional[HeightFunctionTerrain] = None,
        backend: str = TERRAIN_BACKEND_GRID,
        bounds: Optional[Bounds] = None
    ):
        self.field = field
        self.height_function = height_function
        self.backend = backend
        self.bounds = bounds if bounds is not None else Bounds()

    @property
    def backend(self) -> str:
        return self._backend

    @backend.setter
    def backend(self, name: str):
        if name not in TERRAIN_BACKENDS:
            raise ValueError(f"Unknown terrain backend '{name}', expected one of {TERRAIN_BACKENDS}")
        self._backend = name

    @property
    def is_valid(self) -> bool:
        if self.field is not None and self.field.is_valid:
            return True
        return self.height_function is not None

    def _fallback_sample(self) -> TerrainSample:
        mid = self.bounds.mid_elevation
        return TerrainSample(mid, mid, 0.0, TerrainType.NORMAL, False)

    def _combine(self, grid_sample: Optional[TerrainSample], x: float, y: float) -> TerrainSample:
        grid_ok = grid_sample is not None and grid_sample.is_valid

        if self.height_function is not None and (
                self._backend == TERRAIN_BACKEND_HEIGHT_FUNCTION or not grid_ok):
            sample = self.height_function.query(x, y)
            if grid_ok:
                # Elevation from the height function, hazards from the grid
                sample.water_surface_height = grid_sample.water_surface_height
                sample.water_depth = grid_sample.water_depth
                sample.terrain_type = grid_sample.terrain_type
            return sample

        if grid_sample is not None:
            return grid_sample
        return self._fallback_sample()

    def sample(self, x: float, y: float) -> TerrainSample:
        grid_sample = self.field.query(x, y) if self.field is not None else None
        return self._combine(grid_sample, x, y)

    def sample_batch(self, points: np.ndarray) -> List[TerrainSample]:
        points = np.asarray(points, dtype=np.float64)
        if self.field is not None:
            grid_samples = self.field.query_batch(points)
        else:
            grid_samples = [None] * len(points)
        return [self._combine(gs, float(p[0]), float(p[1])) for gs, p in zip(grid_samples, points)]
