"""
Point Cloud Data Loader

This module handles loading and initial validation of the scans to stitch.
PLY files are read with plyfile, LAS/LAZ files with laspy.
"""

from pathlib import Path
from typing import Dict

import laspy
import numpy as np
from plyfile import PlyData

from ..core.point_cloud import PointCloud, to_8bit_colors
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

SUPPORTED_SUFFIXES = ('.ply', '.las', '.laz')


class PointCloudLoader:
    """
    A class for loading point cloud data from PLY and LAS/LAZ files.

    Features:
    - PLY (ASCII or binary) vertex elements via plyfile
    - LAS/LAZ via laspy
    - Colors, normals and intensity kept as per-point attributes
    - Non-finite points dropped
    """

    def load(self, file_path: str | Path) -> PointCloud:
        """
        Load a point cloud file.

        Args:
            file_path: Path to a .ply, .las or .laz file

        Returns:
            PointCloud with positions and available attributes

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file format is unsupported or invalid
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        suffix = file_path.suffix.lower()
        if suffix not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported file format: {file_path.suffix}")

        logger.info(f"Loading point cloud data from {file_path}")

        if suffix == '.ply':
            points, attributes = self._read_ply(file_path)
        else:
            points, attributes = self._read_las(file_path)

        finite = np.all(np.isfinite(points), axis=1)
        n_dropped = int(np.sum(~finite))
        if n_dropped:
            logger.warning(f"Dropping {n_dropped} non-finite points from {file_path.name}")
            points = points[finite]
            attributes = {name: values[finite] for name, values in attributes.items()}

        cloud = PointCloud(points, attributes)
        logger.info(
            f"Loaded {len(cloud):,} points from {file_path.name} "
            f"(attributes: {', '.join(sorted(attributes)) or 'none'})"
        )
        return cloud

    def _read_ply(self, file_path: Path) -> tuple[np.ndarray, Dict[str, np.ndarray]]:
        try:
            ply = PlyData.read(str(file_path))
        except Exception as e:
            raise ValueError(f"Invalid PLY file {file_path}: {e}") from e

        if 'vertex' not in ply:
            raise ValueError(f"PLY file {file_path} has no vertex element")

        vertex = ply['vertex']
        names = set(vertex.data.dtype.names)
        if not {'x', 'y', 'z'} <= names:
            raise ValueError(f"PLY file {file_path} lacks x/y/z vertex properties")

        points = np.column_stack([
            np.asarray(vertex['x'], dtype=np.float64),
            np.asarray(vertex['y'], dtype=np.float64),
            np.asarray(vertex['z'], dtype=np.float64),
        ])

        attributes = {}
        if {'red', 'green', 'blue'} <= names:
            attributes['colors'] = to_8bit_colors(np.column_stack(
                [np.asarray(vertex[c]) for c in ('red', 'green', 'blue')]
            ))
        if {'nx', 'ny', 'nz'} <= names:
            attributes['normals'] = np.column_stack(
                [np.asarray(vertex[c], dtype=np.float64) for c in ('nx', 'ny', 'nz')]
            )
        for scalar in ('intensity', 'reflectance'):
            if scalar in names:
                attributes[scalar] = np.asarray(vertex[scalar])

        return points, attributes

    def _read_las(self, file_path: Path) -> tuple[np.ndarray, Dict[str, np.ndarray]]:
        try:
            las = laspy.read(file_path)
        except Exception as e:
            raise ValueError(f"Invalid LAS/LAZ file {file_path}: {e}") from e

        points = np.column_stack([
            np.array(las.x, dtype=np.float64),
            np.array(las.y, dtype=np.float64),
            np.array(las.z, dtype=np.float64),
        ])

        attributes = {}
        dims = set(las.point_format.dimension_names)
        if 'intensity' in dims:
            attributes['intensity'] = np.array(las.intensity)
        if {'red', 'green', 'blue'} <= dims:
            attributes['colors'] = to_8bit_colors(np.column_stack(
                [np.array(las.red), np.array(las.green), np.array(las.blue)]
            ))

        return points, attributes
