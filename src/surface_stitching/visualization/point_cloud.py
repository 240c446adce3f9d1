"""
Point Cloud Visualization Tools

Displays the reference, target and stitched clouds together with the
overlap box drawn as a wireframe.
"""

from typing import Optional, Sequence

import numpy as np
import plotly.graph_objects as go
import pyvista as pv

from ..core.point_cloud import BoundingBox, PointCloud

# Optional Qt-based interactive plotter
try:
    from pyvistaqt import BackgroundPlotter  # type: ignore
except Exception:  # pragma: no cover
    BackgroundPlotter = None  # type: ignore

# Box edges as pairs of corner indices (bit i of a corner index selects max on axis i)
BOX_EDGES = [
    (0, 1), (2, 3), (4, 5), (6, 7),
    (0, 2), (1, 3), (4, 6), (5, 7),
    (0, 4), (1, 5), (2, 6), (3, 7),
]

DEFAULT_COLORS = ['#87a5eb', '#4b7dd7', '#e07b39', '#59a14f']


class PointCloudVisualizer:
    """A class for visualizing point clouds using different backends."""

    def __init__(self, backend: str = 'plotly', sample_size: Optional[int] = None, seed: int = 0):
        """
        Args:
            backend: 'plotly', 'pyvista', or 'pyvistaqt'
            sample_size: Maximum points drawn per cloud (None = all)
            seed: Seed for the display subsampling
        """
        if backend not in ['plotly', 'pyvista', 'pyvistaqt']:
            raise ValueError(
                f"Unsupported backend: '{backend}'. Choose 'plotly', 'pyvista', or 'pyvistaqt'."
            )
        self.backend = backend
        self.sample_size = sample_size
        self._rng = np.random.default_rng(seed)

    # ----------------- Public API -----------------
    def display(
        self,
        clouds: Sequence[PointCloud],
        names: Sequence[str],
        boxes: Sequence[BoundingBox] = (),
        title: str = "Point Cloud Visualization",
    ):
        """Show clouds (one color each) and optional wireframe boxes."""
        if len(clouds) != len(names):
            raise ValueError("The number of point clouds must match the number of names.")
        point_sets = [self._downsample(c.points) for c in clouds]
        if self.backend == 'plotly':
            self._display_plotly(point_sets, names, boxes, title)
        else:
            self._display_pyvista(point_sets, names, boxes, title)

    def build_plotly_figure(
        self,
        point_sets: Sequence[np.ndarray],
        names: Sequence[str],
        boxes: Sequence[BoundingBox] = (),
        title: str = "Point Cloud Visualization",
    ) -> go.Figure:
        fig = go.Figure()
        for i, (pts, name) in enumerate(zip(point_sets, names)):
            fig.add_trace(go.Scatter3d(
                x=pts[:, 0], y=pts[:, 1], z=pts[:, 2],
                mode='markers',
                marker=dict(size=1, color=DEFAULT_COLORS[i % len(DEFAULT_COLORS)]),
                name=name,
            ))
        for box in boxes:
            xs, ys, zs = _box_line_coordinates(box)
            fig.add_trace(go.Scatter3d(
                x=xs, y=ys, z=zs,
                mode='lines',
                line=dict(color='white', width=2),
                name='overlap box',
                showlegend=False,
            ))
        fig.update_layout(
            title=title,
            template='plotly_dark',
            scene=dict(
                xaxis=dict(visible=False), yaxis=dict(visible=False), zaxis=dict(visible=False), aspectmode='data'
            ),
        )
        return fig

    # ----------------- Internal helpers -----------------
    def _downsample(self, points: np.ndarray) -> np.ndarray:
        if not self.sample_size or self.sample_size >= len(points):
            return points
        indices = self._rng.choice(len(points), self.sample_size, replace=False)
        return points[indices]

    def _display_plotly(self, point_sets, names, boxes, title):
        fig = self.build_plotly_figure(point_sets, names, boxes, title)
        fig.show(renderer="browser")

    def _get_plotter(self):
        if self.backend == 'pyvistaqt':
            if BackgroundPlotter is None:
                raise ImportError("pyvistaqt is not installed. Install with 'pip install pyvistaqt PySide6'.")
            return BackgroundPlotter()
        return pv.Plotter()

    def _display_pyvista(self, point_sets, names, boxes, title):
        plotter = self._get_plotter()
        for i, (pts, name) in enumerate(zip(point_sets, names)):
            plotter.add_mesh(
                pv.PolyData(pts),
                label=name,
                color=DEFAULT_COLORS[i % len(DEFAULT_COLORS)],
                render_points_as_spheres=False,
                point_size=3,
                lighting=False,
            )
        for box in boxes:
            lo, hi = box.min_corner, box.max_corner
            plotter.add_mesh(
                pv.Box(bounds=(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2])),
                style='wireframe',
                color='white',
            )
        plotter.add_title(title)
        plotter.add_legend()
        plotter.show()


def _box_line_coordinates(box: BoundingBox):
    """Polyline coordinates (None-separated) of the 12 box edges."""
    corners = box.corners()
    xs, ys, zs = [], [], []
    for a, b in BOX_EDGES:
        for idx in (a, b):
            xs.append(corners[idx, 0])
            ys.append(corners[idx, 1])
            zs.append(corners[idx, 2])
        xs.append(None)
        ys.append(None)
        zs.append(None)
    return xs, ys, zs
