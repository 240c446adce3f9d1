"""
Point Cloud and Bounding Box Types

A PointCloud owns its arrays: every stage returns a new cloud built from
copies, so a cropped, subsampled or merged cloud never aliases its input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np


@dataclass
class PointCloud:
    """
    Ordered set of 3D points with optional per-point attributes.

    Attributes:
        points: (N, 3) float64 positions.
        attributes: Mapping of attribute name to an array whose first
            dimension is N (e.g. "colors" (N, 3), "normals" (N, 3),
            "intensity" (N,)).
        grid_shape: (rows, cols) for organized clouds, stored row-major so
            that rows * cols == N. None for unorganized clouds.
    """

    points: np.ndarray
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    grid_shape: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        pts = np.asarray(self.points, dtype=np.float64)
        if pts.size == 0:
            pts = pts.reshape(0, 3)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise ValueError(f"Points must be an (N, 3) array, got shape {pts.shape}")
        self.points = pts

        n = len(pts)
        attributes = {}
        for name, values in self.attributes.items():
            values = np.asarray(values)
            if len(values) != n:
                raise ValueError(
                    f"Attribute '{name}' has {len(values)} entries for {n} points"
                )
            attributes[name] = values
        self.attributes = attributes

        if self.grid_shape is not None:
            rows, cols = (int(v) for v in self.grid_shape)
            if rows * cols != n:
                raise ValueError(
                    f"Grid shape {rows}x{cols} does not match {n} points"
                )
            self.grid_shape = (rows, cols)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_organized(self) -> bool:
        return self.grid_shape is not None

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min_xyz, max_xyz). Raises ValueError for an empty cloud."""
        if self.is_empty:
            raise ValueError("Empty point cloud has no bounds")
        return self.points.min(axis=0), self.points.max(axis=0)

    def select(self, mask_or_indices: np.ndarray, grid_shape: Optional[Tuple[int, int]] = None) -> "PointCloud":
        """New cloud holding copies of the selected points and their attributes."""
        points = self.points[mask_or_indices].copy()
        attributes = {name: values[mask_or_indices].copy() for name, values in self.attributes.items()}
        return PointCloud(points, attributes, grid_shape=grid_shape)

    def copy(self) -> "PointCloud":
        return PointCloud(
            self.points.copy(),
            {name: values.copy() for name, values in self.attributes.items()},
            grid_shape=self.grid_shape,
        )

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(np.empty((0, 3), dtype=np.float64))


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box defined by its center and full extents.

    Extents may be given with a negative sign; only their magnitude matters.
    """

    center: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    size: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self):
        center = tuple(float(v) for v in self.center)
        size = tuple(abs(float(v)) for v in self.size)
        if len(center) != 3 or len(size) != 3:
            raise ValueError("BoundingBox center and size need three components")
        object.__setattr__(self, "center", center)
        object.__setattr__(self, "size", size)

    @classmethod
    def from_corners(cls, min_corner: Sequence[float], max_corner: Sequence[float]) -> "BoundingBox":
        lo = np.asarray(min_corner, dtype=float)
        hi = np.asarray(max_corner, dtype=float)
        return cls(center=tuple((lo + hi) / 2.0), size=tuple(np.abs(hi - lo)))

    @property
    def min_corner(self) -> np.ndarray:
        return np.asarray(self.center) - np.asarray(self.size) / 2.0

    @property
    def max_corner(self) -> np.ndarray:
        return np.asarray(self.center) + np.asarray(self.size) / 2.0

    def scaled(self, sx: float = 1.0, sy: float = 1.0, sz: float = 1.0) -> "BoundingBox":
        """Box with the same center and extents multiplied per axis."""
        x, y, z = self.size
        return BoundingBox(center=self.center, size=(x * sx, y * sy, z * sz))

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of points inside or on the boundary of the box."""
        points = np.asarray(points, dtype=float)
        if points.size == 0:
            return np.zeros(0, dtype=bool)
        lo = self.min_corner
        hi = self.max_corner
        return np.all((points >= lo) & (points <= hi), axis=1)

    def corners(self) -> np.ndarray:
        """The eight corners, ordered so that bit i of the index selects max on axis i."""
        lo = self.min_corner
        hi = self.max_corner
        return np.array(
            [[(hi if (i >> a) & 1 else lo)[a] for a in range(3)] for i in range(8)]
        )


def to_8bit_colors(colors: np.ndarray) -> np.ndarray:
    """
    Bring RGB colors to the 0..255 scale used by the "colors" attribute.

    LAS (and some PLY) files store 16-bit channels; those are divided by 257,
    the inverse of the 8 -> 16 bit expansion. Channels already within 0..255
    are kept as they are.
    """
    colors = np.asarray(colors)
    if colors.size and colors.max() > 255:
        colors = np.round(colors.astype(np.float64) / 257.0)
    return np.clip(colors, 0, 255).astype(np.uint8)
