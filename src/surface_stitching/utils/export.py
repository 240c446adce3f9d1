"""
Export utilities for stitched point clouds.

Writes a PointCloud to:
- PLY (binary little-endian) with colors, normals and scalar attributes
- LAZ/LAS with colors and intensity
"""

from pathlib import Path

import numpy as np

from ..core.point_cloud import PointCloud, to_8bit_colors
from .logging import setup_logger

EXPORT_SUFFIXES = ('.ply', '.las', '.laz')

logger = setup_logger(__name__)


def export_point_cloud(cloud: PointCloud, output_path: str | Path) -> str:
    """
    Export a point cloud; the extension of output_path selects the format.

    Args:
        cloud: Cloud to write.
        output_path: Destination (.ply, .las or .laz).

    Returns:
        Path to created file

    Raises:
        ValueError: If the extension is not supported.
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()
    if suffix not in EXPORT_SUFFIXES:
        raise ValueError(f"Unsupported output format: {output_path.suffix}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == '.ply':
        _write_ply(cloud, output_path)
    else:
        _write_las(cloud, output_path)

    logger.info(f"Exported {len(cloud):,} points to {output_path}")
    return str(output_path)


def _write_ply(cloud: PointCloud, output_path: Path) -> None:
    from plyfile import PlyData, PlyElement

    fields = [('x', 'f8'), ('y', 'f8'), ('z', 'f8')]
    columns = [cloud.points[:, 0], cloud.points[:, 1], cloud.points[:, 2]]

    colors = cloud.attributes.get('colors')
    if colors is not None and colors.ndim == 2 and colors.shape[1] == 3:
        fields += [('red', 'u1'), ('green', 'u1'), ('blue', 'u1')]
        colors = to_8bit_colors(colors)
        columns += [colors[:, i] for i in range(3)]

    normals = cloud.attributes.get('normals')
    if normals is not None and normals.ndim == 2 and normals.shape[1] == 3:
        fields += [('nx', 'f4'), ('ny', 'f4'), ('nz', 'f4')]
        columns += [normals[:, i].astype(np.float32) for i in range(3)]

    for scalar in ('intensity', 'reflectance'):
        values = cloud.attributes.get(scalar)
        if values is not None and values.ndim == 1:
            fields.append((scalar, 'f4'))
            columns.append(values.astype(np.float32))

    vertex = np.empty(len(cloud), dtype=fields)
    for (name, _), column in zip(fields, columns):
        vertex[name] = column

    PlyData([PlyElement.describe(vertex, 'vertex')]).write(str(output_path))


def _write_las(cloud: PointCloud, output_path: Path) -> None:
    import laspy

    # Point format 2 carries RGB; millimetre resolution for the coordinates
    header = laspy.LasHeader(point_format=2, version="1.2")
    header.scales = np.array([0.001, 0.001, 0.001])
    if not cloud.is_empty:
        header.offsets = np.floor(cloud.points.min(axis=0))

    las = laspy.LasData(header)
    las.x = cloud.points[:, 0]
    las.y = cloud.points[:, 1]
    las.z = cloud.points[:, 2]

    colors = cloud.attributes.get('colors')
    if colors is not None and colors.ndim == 2 and colors.shape[1] == 3:
        # LAS stores 16-bit color channels
        scaled = colors.astype(np.uint16)
        if colors.max(initial=0) <= 255:
            scaled = scaled * 257
        las.red = scaled[:, 0]
        las.green = scaled[:, 1]
        las.blue = scaled[:, 2]

    intensity = cloud.attributes.get('intensity')
    if intensity is not None and intensity.ndim == 1:
        # Padded (NaN) intensities from a merge are written as 0
        las.intensity = np.clip(np.nan_to_num(intensity, nan=0.0), 0, 65535).astype(np.uint16)

    las.write(str(output_path))
