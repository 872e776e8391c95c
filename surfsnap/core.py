"""
Array and file level entry points for surface snapping.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .errors import GeometryMismatchError, InputError
from .gradient import EdgePolarity
from .pipeline import SegmentationParams, run_segmentation
from .volume import VolumeGrid
from .volume_io import (DebugWriter, read_fiducials, read_mask, read_volume, read_volume_info, working_dtype,
                        write_volume)


def segment_volume(image: np.ndarray,
                   mask: np.ndarray,
                   spacing: Sequence[float] = (1.0, 1.0, 1.0),
                   fiducials: Optional[np.ndarray] = None,
                   erode_mm: float = 3.0,
                   dilate_mm: float = 3.0,
                   smooth_mm: float = 2.0,
                   dark_to_light: bool = False,
                   connectivity: int = 6) -> np.ndarray:
    """
    Snap a coarse mask onto the nearest strong intensity edge.

    Parameters:
    ----------
    image : np.ndarray
        3D intensity volume, any numeric dtype.
    mask : np.ndarray
        Coarse mask of the object, non-zero inside. Same shape as image.
    spacing : sequence of 3 floats
        Voxel spacing in mm along each array axis.
    fiducials : np.ndarray, optional
        Landmark weights, scaled by 100 and 200 and merged into the stage costs.
    erode_mm, dilate_mm : float
        Marker erosion and background dilation radii in mm.
    smooth_mm : float
        Gradient smoothing sigma in mm.
    dark_to_light : bool
        Look for edges where intensity rises when leaving the mask.
    connectivity : int
        6, 18 or 26. Default 6.

    Returns:
    -------
    np.ndarray
        uint8 mask, 1 inside the snapped surface. Same shape as image.
    """
    image = np.asarray(image)
    mask = np.asarray(mask)
    if image.ndim != 3:
        raise ValueError(f"Image must be 3D, got {image.ndim} dimensions")
    if image.shape != mask.shape:
        raise GeometryMismatchError(f"Image and mask must have same shape, got {image.shape} vs {mask.shape}")
    if fiducials is not None and np.shape(fiducials) != image.shape:
        raise GeometryMismatchError(f"Image and fiducials must have same shape, got {image.shape} vs {np.shape(fiducials)}")

    params = SegmentationParams(
        erode_mm=erode_mm,
        dilate_mm=dilate_mm,
        smooth_mm=smooth_mm,
        polarity=EdgePolarity.DARK_TO_LIGHT if dark_to_light else EdgePolarity.LIGHT_TO_DARK,
        connectivity=connectivity,
    )
    intensity = VolumeGrid(image, spacing)
    marks = intensity.like((mask != 0).astype(np.uint8))
    fids = intensity.like(np.asarray(fiducials)) if fiducials is not None else None
    return np.array(run_segmentation(intensity, marks, fids, params).data)


def process_volume_files(input_path: str,
                         mask_path: str,
                         output_path: str,
                         fiducial_path: Optional[str] = None,
                         params: Optional[SegmentationParams] = None,
                         debug_prefix: Optional[str] = None,
                         debug_previews: bool = False) -> VolumeGrid:
    """
    Read the input volumes, run the two-stage segmentation and write the result.

    The intensity volume is cast once to a working dtype picked from its
    on-disk component type. Debug volumes are written only when
    ``debug_prefix`` is given.
    """
    component, ndim = read_volume_info(input_path)
    if ndim != 3:
        raise InputError(input_path, f"isn't 3D ({ndim} dimensions)")
    dtype = working_dtype(component)
    logging.info(f"{input_path}: component type {component}, working type {dtype}")

    intensity = read_volume(input_path, dtype)
    mask = read_mask(mask_path)
    fiducials = read_fiducials(fiducial_path) if fiducial_path else None

    sink = DebugWriter(debug_prefix, previews=debug_previews) if debug_prefix else None
    result = run_segmentation(intensity, mask, fiducials, params, sink)
    write_volume(intensity.like(result.data), output_path)
    return result
