"""
Foreground/background marker construction from a coarse mask.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .morphology import dilate, erode, fill_holes, invert
from .volume import Label, VolumeGrid, binary, check_geometry

# the region used to restrict the stage-1 gradient is never dilated by less than this
HEAD_MARGIN_MM = 5.0


@dataclass(frozen=True)
class MarkerSet:
    """
    Combined marker volume plus the pieces it was built from.

    labels     : FOREGROUND / BACKGROUND / UNLABELED marker volume
    filled     : input mask with enclosed holes filled
    foreground : eroded filled mask (confident inside)
    background : BACKGROUND where outside the dilated filled mask, else 0
    head       : filled mask dilated by max(dilate, HEAD_MARGIN_MM), used only
                 to restrict the directional gradient
    """
    labels: VolumeGrid
    filled: VolumeGrid
    foreground: VolumeGrid
    background: VolumeGrid
    head: VolumeGrid


def combine_markers(foreground: VolumeGrid, background: VolumeGrid) -> VolumeGrid:
    """
    Merge a foreground mask and a background marker into one label volume.

    A voxel marked in ``foreground`` is FOREGROUND even when ``background``
    also marks it; otherwise any non-zero ``background`` voxel is BACKGROUND.
    """
    check_geometry(foreground=foreground, background=background)
    fg = binary(foreground)
    bg = binary(background)
    labels = np.full(foreground.shape, Label.UNLABELED, dtype=np.uint8)
    labels[bg] = Label.BACKGROUND
    labels[fg] = Label.FOREGROUND
    return foreground.like(labels)


def build_markers(mask: VolumeGrid, erode_mm: float, dilate_mm: float, workers: int = 0) -> MarkerSet:
    filled = fill_holes(mask)
    foreground = erode(filled, erode_mm, workers)
    outer = dilate(filled, dilate_mm, workers)
    head = dilate(filled, max(float(dilate_mm), HEAD_MARGIN_MM), workers)
    background = invert(outer, Label.BACKGROUND)
    labels = combine_markers(foreground, background)

    n_fg = labels.count(Label.FOREGROUND)
    n_bg = labels.count(Label.BACKGROUND)
    logging.info(f"Markers: {n_fg} foreground, {n_bg} background, {labels.count(Label.UNLABELED)} to flood")
    if n_fg == 0:
        logging.warning(f"Erosion by {erode_mm} mm removed the whole mask, no foreground marker")
    if n_bg == 0:
        logging.warning(f"Dilation by {dilate_mm} mm covers the whole volume, no background marker")
    return MarkerSet(labels=labels, filled=filled, foreground=foreground, background=background, head=head)
