"""
Configuration management for surface-stitching.

Provides a typed pydantic model and YAML loader with sensible defaults.
Default values reproduce the reference stitching example (box of
170 x 200 x 66 around the origin, 95 % pre-registration overlap, decimation
step 8, at most 100 ICP iterations, 0.5 % relative RMS threshold).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class InputConfig(BaseModel):
    reference: Optional[str] = Field(default=None, description="Fixed (reference) point cloud file")
    target: Optional[str] = Field(default=None, description="Moving (target) point cloud file")


class CropBoxConfig(BaseModel):
    center: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    size_x: float = Field(default=170.0)
    size_y: float = Field(default=200.0)
    # Negative extents are allowed; only the magnitude is used
    size_z: float = Field(default=-66.0)
    prealign_overlap_fraction: float = Field(
        default=0.18,
        description="Fraction of size_y kept for the pre-registration crop",
    )
    refine_overlap_fraction: float = Field(
        default=0.20,
        description="Fraction of size_y used to measure the expected overlap before refinement",
    )

    @field_validator("center")
    @classmethod
    def _three_components(cls, value: List[float]) -> List[float]:
        if len(value) != 3:
            raise ValueError("crop_box.center must have exactly three components")
        return value

    @field_validator("prealign_overlap_fraction", "refine_overlap_fraction")
    @classmethod
    def _positive_fraction(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("overlap fractions must be positive")
        return value


class RegistrationConfig(BaseModel):
    grid_size: float = Field(default=1.0, gt=0, description="Cell size for unorganized decimation")
    decimation_step: int = Field(default=8, ge=1, description="Row/column step for organized decimation")
    subsample: bool = Field(default=True)
    max_iterations: int = Field(default=100, ge=1)
    rms_error_relative_threshold: float = Field(
        default=0.5,
        ge=0,
        description="Relative RMS improvement (percent) below which ICP stops",
    )
    rms_error_threshold: Optional[float] = Field(
        default=None,
        description="Absolute RMS error below which ICP stops (disabled when null)",
    )
    overlap: float = Field(default=95.0, gt=0, le=100, description="Expected overlap (percent)")
    metric: Literal["point_to_point", "point_to_plane"] = Field(default="point_to_point")
    max_correspondence_distance: Optional[float] = Field(
        default=None,
        description="Pairs farther apart are rejected (auto = 10 % of the fixed cloud diagonal)",
    )
    min_point_pairs: int = Field(default=6, ge=3)
    normal_neighbors: int = Field(default=12, ge=3, description="k for point-to-plane normal estimation")
    n_jobs: Optional[int] = Field(default=-1, description="Parallel jobs for nearest-neighbor queries (-1 = all cores)")


class StitchingConfig(BaseModel):
    recrop_for_refinement: bool = Field(
        default=False,
        description="Refine on clouds re-cropped to the refinement box instead of the full clouds",
    )


class OutputConfig(BaseModel):
    path: Optional[str] = Field(default=None, description="Where to write the stitched cloud (.ply/.las/.laz)")


class VisualizationConfig(BaseModel):
    enabled: bool = Field(default=False)
    backend: Literal["plotly", "pyvista", "pyvistaqt"] = Field(default="plotly")
    sample_size: int = Field(default=50000)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    input: InputConfig = Field(default_factory=InputConfig)
    crop_box: CropBoxConfig = Field(default_factory=CropBoxConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    stitching: StitchingConfig = Field(default_factory=StitchingConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    visualization: VisualizationConfig = Field(default_factory=VisualizationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """
    Resolve the repository root directory.

    File is at: repo_root/src/surface_stitching/utils/config.py
    parents sequence:
      0 -> .../src/surface_stitching/utils
      1 -> .../src/surface_stitching
      2 -> .../src
      3 -> repo_root   <-- correct root
    """
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) repo_root/config/default.yaml
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
