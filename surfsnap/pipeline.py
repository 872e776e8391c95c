"""
Two-stage marker-controlled watershed that snaps a coarse mask onto the
nearest strong edge.

Stage 1 floods a masked, polarity-clamped directional gradient from markers
built out of the input mask. Stage 2 reseeds the foreground from the stage-1
result, keeps the original background marker, and floods the full unclamped
gradient so the boundary can settle on the strongest nearby edge.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .gradient import (STAGE1_FIDUCIAL_SCALE, STAGE2_FIDUCIAL_SCALE, EdgePolarity, directional_gradient,
                       inject_fiducials, smooth)
from .markers import build_markers, combine_markers
from .volume import Label, VolumeGrid, check_geometry
from .watershed import BACKENDS, CONNECTIVITIES, select_label, watershed

STAGE2_COSTS = ("gradient", "intensity")

# receives (artifact name, grid) for every intermediate volume
DebugSink = Callable[[str, VolumeGrid], None]


@dataclass(frozen=True)
class SegmentationParams:
    """Settings for one run, fixed for its whole duration."""
    erode_mm: float = 3.0
    dilate_mm: float = 3.0
    smooth_mm: float = 2.0
    polarity: EdgePolarity = EdgePolarity.LIGHT_TO_DARK
    connectivity: int = 6
    backend: str = "flood"
    stage2_cost: str = "gradient"
    workers: int = 0
    progress: bool = False

    def __post_init__(self):
        object.__setattr__(self, "polarity", EdgePolarity(self.polarity))
        if self.connectivity not in CONNECTIVITIES:
            raise ValueError(f"connectivity must be 6, 18 or 26, got {self.connectivity}")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend!r}")
        if self.stage2_cost not in STAGE2_COSTS:
            raise ValueError(f"stage2_cost must be one of {STAGE2_COSTS}, got {self.stage2_cost!r}")


def _no_debug(name: str, grid: VolumeGrid) -> None:
    pass


def stage2_cost(intensity: VolumeGrid, head: VolumeGrid, params: SegmentationParams) -> VolumeGrid:
    """Cost field of the second pass, unrestricted and unclamped."""
    if params.stage2_cost == "intensity":
        return smooth(intensity, params.smooth_mm)
    return directional_gradient(intensity, head, params.polarity, params.smooth_mm, restrict=False, clamp=False)


def run_segmentation(intensity: VolumeGrid,
                     mask: VolumeGrid,
                     fiducials: Optional[VolumeGrid] = None,
                     params: Optional[SegmentationParams] = None,
                     debug: Optional[DebugSink] = None) -> VolumeGrid:
    """
    Segment the closed surface outlined by ``mask`` in ``intensity``.

    Returns a uint8 mask, 1 inside the snapped surface. ``debug`` is called
    with the intermediate volumes "filled", "head", "marker1", "grad1",
    "stage1", "grad2" and "marker2".
    """
    params = params or SegmentationParams()
    emit = debug or _no_debug
    check_geometry(intensity=intensity, mask=mask, fiducials=fiducials)
    if params.polarity == EdgePolarity.DARK_TO_LIGHT:
        logging.info("Looking for dark to light edge")

    t0 = time.time()
    markers = build_markers(mask, params.erode_mm, params.dilate_mm, params.workers)
    emit("filled", markers.filled)
    emit("head", markers.head)
    emit("marker1", markers.labels)

    grad1 = directional_gradient(intensity, markers.head, params.polarity, params.smooth_mm,
                                 restrict=True, clamp=True)
    if fiducials is not None:
        grad1 = inject_fiducials(grad1, fiducials, STAGE1_FIDUCIAL_SCALE)
    emit("grad1", grad1)

    ws1 = watershed(grad1, markers.labels, params.connectivity, params.backend, params.progress)
    stage1 = select_label(ws1, Label.FOREGROUND)
    emit("stage1", stage1)
    logging.info(f"Stage 1: {stage1.count()} foreground voxels, {(time.time() - t0) * 1000.0:.2f} ms")

    t1 = time.time()
    # the background marker is the original one, not re-dilated around stage 1
    markers2 = combine_markers(stage1, markers.background)
    grad2 = stage2_cost(intensity, markers.head, params)
    if fiducials is not None:
        grad2 = inject_fiducials(grad2, fiducials, STAGE2_FIDUCIAL_SCALE)
    emit("grad2", grad2)
    emit("marker2", markers2)

    ws2 = watershed(grad2, markers2, params.connectivity, params.backend, params.progress)
    result = select_label(ws2, Label.FOREGROUND)
    logging.info(f"Stage 2: {result.count()} foreground voxels, {(time.time() - t1) * 1000.0:.2f} ms")
    return result
