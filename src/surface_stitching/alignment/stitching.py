"""
Two-Phase Surface Stitching

Registers two partial scans and merges them:

1. Both clouds are cropped to the expected overlap box and pre-registered
   with a generous overlap percentage.
2. The share of reference points inside the refinement box gives the true
   overlap of the full clouds; the overlap percentage is scaled accordingly.
3. The full clouds (or clouds re-cropped to the refinement box) are
   registered again, seeded with the pre-registration transform.
4. The target is merged into the reference frame.

Starting from the cropped region avoids the wrong local minima a full-cloud
ICP falls into when the true overlap is a small part of each scan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ..core.point_cloud import BoundingBox, PointCloud
from ..preprocessing.cropping import count_points_in_box, crop
from ..utils.logging import setup_logger
from .merge import merge_point_clouds
from .pairwise_registration import (
    AlignmentContext,
    PairwiseAligner,
    RegistrationResult,
    RegistrationStatus,
)
from .spatial_index import KDTreeIndex, SpatialIndex

logger = setup_logger(__name__)


@dataclass
class StitchingResult:
    """Outcome of the two-phase registration and merge."""

    prealignment: RegistrationResult
    registration: RegistrationResult
    refined_overlap: Optional[float] = None
    merged: Optional[PointCloud] = None

    @property
    def status(self) -> RegistrationStatus:
        return self.registration.status

    @property
    def elapsed_s(self) -> float:
        return self.prealignment.elapsed_s + (
            self.registration.elapsed_s if self.registration is not self.prealignment else 0.0
        )


@dataclass
class SurfaceStitcher:
    """
    Two-phase pairwise registration followed by a merge.

    Attributes:
        context: ICP configuration; its overlap is used for the pre-registration.
        prealign_box: Crop box for the pre-registration.
        refine_box: Box measuring the expected overlap of the reference cloud.
        recrop_for_refinement: Refine on clouds cropped to refine_box
            instead of the full clouds.
        index_factory: Spatial index used by the aligner.
    """

    context: AlignmentContext
    prealign_box: BoundingBox
    refine_box: BoundingBox
    recrop_for_refinement: bool = False
    index_factory: Callable[..., SpatialIndex] = KDTreeIndex

    @classmethod
    def from_config(cls, cfg) -> "SurfaceStitcher":
        """Build a stitcher from an AppConfig."""
        box_cfg = cfg.crop_box
        base = BoundingBox(
            center=tuple(box_cfg.center),
            size=(box_cfg.size_x, box_cfg.size_y, box_cfg.size_z),
        )
        return cls(
            context=AlignmentContext.from_config(cfg.registration),
            prealign_box=base.scaled(sy=box_cfg.prealign_overlap_fraction),
            refine_box=base.scaled(sy=box_cfg.refine_overlap_fraction),
            recrop_for_refinement=cfg.stitching.recrop_for_refinement,
        )

    def register(self, fixed: PointCloud, moving: PointCloud) -> StitchingResult:
        """
        Run pre-registration and refinement.

        Args:
            fixed: Reference scan.
            moving: Target scan, registered onto the reference.

        Returns:
            StitchingResult without merged cloud.
        """
        aligner = PairwiseAligner(self.context, index_factory=self.index_factory)

        cropped_fixed = crop(fixed, self.prealign_box)
        cropped_moving = crop(moving, self.prealign_box)
        logger.info(
            "Pre-registration on cropped clouds (%d reference, %d target points).",
            len(cropped_fixed),
            len(cropped_moving),
        )
        prealignment = aligner.align(cropped_fixed, cropped_moving)
        if not prealignment.has_transform:
            logger.warning(
                "Pre-registration failed (%s); skipping refinement.", prealignment.status.value
            )
            return StitchingResult(prealignment=prealignment, registration=prealignment)

        refined_overlap = self.refined_overlap(fixed)
        if refined_overlap is None:
            failure = RegistrationResult(
                status=RegistrationStatus.NOT_ENOUGH_POINT_PAIRS,
                overlap=0.0,
            )
            return StitchingResult(prealignment=prealignment, registration=failure)

        if self.recrop_for_refinement:
            fixed_refine = crop(fixed, self.refine_box)
            moving_refine = crop(moving, self.refine_box)
        else:
            fixed_refine, moving_refine = fixed, moving

        logger.info("Refinement with overlap %.2f%%.", refined_overlap)
        refine_aligner = PairwiseAligner(
            self.context.with_overlap(refined_overlap),
            index_factory=self.index_factory,
        )
        registration = refine_aligner.align(
            fixed_refine,
            moving_refine,
            initial_transform=prealignment.transform,
        )
        return StitchingResult(
            prealignment=prealignment,
            registration=registration,
            refined_overlap=refined_overlap,
        )

    def refined_overlap(self, fixed: PointCloud) -> Optional[float]:
        """
        Overlap percentage for the refinement pass.

        Scales the configured overlap by the share of reference points inside
        the refinement box. None when no reference point is available.
        """
        total = len(fixed)
        if total == 0:
            logger.warning("Reference cloud is empty; cannot estimate the overlap.")
            return None
        inside = count_points_in_box(fixed, self.refine_box)
        if inside == 0:
            logger.warning("No reference point lies in the refinement box; the clouds do not overlap.")
            return None
        overlap = inside / total * self.context.overlap
        logger.debug("Refinement box holds %d/%d reference points.", inside, total)
        return min(overlap, 100.0)

    def stitch(self, fixed: PointCloud, moving: PointCloud) -> StitchingResult:
        """Register and, when a transform is available, merge the two clouds."""
        result = self.register(fixed, moving)
        if result.registration.has_transform:
            result.merged = merge_point_clouds(result.registration, fixed, moving)
        return result
