"""
Surface snapping by two-stage marker-controlled watershed
---------------------------------------------------------
Turns a coarse binary mask of a closed surface (for example the scalp in a
head MRI) into markers, floods a directional intensity gradient from them,
and refines the result in a second pass so the boundary settles on the
nearest strong edge.

Example:
    >>> import numpy as np
    >>> from surfsnap import segment_volume
    >>>
    >>> # 3D intensity volume and a rough mask of the object
    >>> image = ...  # Your volume loading code here
    >>> mask = ...   # uint8, non-zero inside
    >>>
    >>> # Bright object on a dark background, 1 mm voxels
    >>> surface = segment_volume(image, mask, spacing=(1.0, 1.0, 1.0),
    ...                          erode_mm=3.0, dilate_mm=3.0, smooth_mm=2.0)
"""

from .core import segment_volume, process_volume_files
from .errors import GeometryMismatchError, InputError, SurfSnapError, WatershedConsistencyError
from .gradient import EdgePolarity
from .pipeline import SegmentationParams, run_segmentation
from .volume import Label, VolumeGrid

__version__ = "0.1.0"
__all__ = [
    "segment_volume",
    "process_volume_files",
    "run_segmentation",
    "SegmentationParams",
    "EdgePolarity",
    "Label",
    "VolumeGrid",
    "SurfSnapError",
    "InputError",
    "GeometryMismatchError",
    "WatershedConsistencyError",
]
