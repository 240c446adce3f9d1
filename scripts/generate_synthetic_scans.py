"""
Generate two synthetic partial scans (PLY) of one object for the stitching workflow.

- Creates a smooth surface with a few bumps, sampled on a regular grid.
- The reference scan covers y in [-100, 20], the target scan y in [-20, 100],
  so both share a 40-unit band around y = 0 (the default overlap box).
- The target is expressed in a slightly different frame (small rotation and
  translation) to simulate the scanner moving between acquisitions.
- Writes data/synthetic/StitchReference.ply and data/synthetic/StitchTarget.ply.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.core.point_cloud import PointCloud
from surface_stitching.utils.export import export_point_cloud
from surface_stitching.utils.rigid_transform import apply_transform, make_transform, rotation_matrix


def surface_height(X, Y):
    """Gaussian bumps plus a gentle tilt; stays within |z| < 25."""
    bumps = [(20.0, 0.0, 15.0, 12.0), (-35.0, -40.0, 18.0, -8.0), (40.0, 50.0, 14.0, 10.0), (-10.0, 10.0, 8.0, 5.0)]
    Z = 0.03 * X - 0.02 * Y
    for cx, cy, r, h in bumps:
        Z = Z + h * np.exp(-((X - cx) ** 2 + (Y - cy) ** 2) / (2 * r ** 2))
    return Z


def make_scan(y_min, y_max, spacing=0.5, noise=0.02, seed=0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    x = np.arange(-80.0, 80.0 + spacing, spacing)
    y = np.arange(y_min, y_max + spacing, spacing)
    X, Y = np.meshgrid(x, y)
    Z = surface_height(X, Y) + noise * rng.standard_normal(size=X.shape)
    return np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic partial scans")
    parser.add_argument("--out-dir", default="data/synthetic")
    parser.add_argument("--rotation-deg", type=float, default=2.0, help="Rotation of the target frame about z")
    parser.add_argument("--translation", type=float, nargs=3, default=[1.5, -1.0, 0.5])
    args = parser.parse_args()

    out_dir = Path(args.out_dir)
    reference = make_scan(-100.0, 20.0, seed=1)
    target = make_scan(-20.0, 100.0, seed=2)

    frame = make_transform(rotation_matrix([0.0, 0.0, 1.0], args.rotation_deg), args.translation)
    target = apply_transform(target, frame)

    export_point_cloud(PointCloud(reference), out_dir / "StitchReference.ply")
    export_point_cloud(PointCloud(target), out_dir / "StitchTarget.ply")
    print(f"Wrote {len(reference)} + {len(target)} points to {out_dir}")


if __name__ == "__main__":
    main()
