"""
Directional gradient of an intensity volume.

The intensity gradient is projected on the outward normal of a reference
mask, so the sign of the result tells whether intensity falls (light to
dark) or rises (dark to light) when leaving the mask. Scaling by the edge
polarity keeps the requested kind of edge positive.
"""

import logging
from enum import IntEnum
from typing import Optional

import numpy as np
from scipy import ndimage

from .volume import VolumeGrid, binary, check_geometry

# fiducial voxels are scaled by these before being merged into a cost field
STAGE1_FIDUCIAL_SCALE = 100.0
STAGE2_FIDUCIAL_SCALE = 200.0


class EdgePolarity(IntEnum):
    """Sign applied to the outward directional derivative."""
    LIGHT_TO_DARK = 1
    DARK_TO_LIGHT = -1


def _axis_slice(axis: int, start, stop):
    sl = [slice(None)] * 3
    sl[axis] = slice(start, stop)
    return tuple(sl)


def outward_normals(region: np.ndarray, spacing) -> np.ndarray:
    """
    Unit outward normals of a binary region, shape (3, nx, ny, nz).

    Normals are the normalised gradient of the signed distance to the region
    boundary (negative inside, positive outside). Space beyond the volume
    faces counts as outside the region. Voxels where the distance has no
    slope get a zero normal.
    """
    inside = np.pad(region, 1, mode="constant", constant_values=False)
    if not region.any():
        phi = np.zeros(inside.shape)
    else:
        depth = ndimage.distance_transform_edt(inside, sampling=spacing)
        height = ndimage.distance_transform_edt(~inside, sampling=spacing)
        phi = height - depth
    crop = (slice(1, -1),) * 3
    normals = np.stack([np.gradient(phi, spacing[a], axis=a)[crop] for a in range(3)])
    norm = np.sqrt((normals ** 2).sum(axis=0))
    nz = norm > 0
    normals[:, nz] /= norm[nz]
    normals[:, ~nz] = 0.0
    return normals


def masked_derivative(values: np.ndarray, inside: np.ndarray, axis: int, step: float) -> np.ndarray:
    """
    Finite difference along ``axis`` that never reads across the region edge.

    Central difference where both neighbours are inside, one-sided where only
    one is, zero where neither is or the voxel itself is outside.
    """
    diff = np.diff(values, axis=axis) / step
    ok = inside[_axis_slice(axis, None, -1)] & inside[_axis_slice(axis, 1, None)]
    diff = np.where(ok, diff, 0.0)

    total = np.zeros(values.shape)
    count = np.zeros(values.shape, dtype=np.int8)
    total[_axis_slice(axis, None, -1)] += diff
    count[_axis_slice(axis, None, -1)] += ok
    total[_axis_slice(axis, 1, None)] += diff
    count[_axis_slice(axis, 1, None)] += ok
    out = np.zeros(values.shape)
    np.divide(total, count, out=out, where=count > 0)
    return out


def smooth(grid: VolumeGrid, sigma_mm: float) -> VolumeGrid:
    """Gaussian smoothing with sigma in mm, converted per axis with the spacing."""
    sigma_mm = float(sigma_mm)
    values = grid.data.astype(np.float64)
    if not sigma_mm > 0:
        logging.warning(f"Non-positive smoothing sigma {sigma_mm} mm, smoothing skipped")
        return grid.like(values.astype(np.float32))
    sigma = [sigma_mm / s for s in grid.spacing]
    return grid.like(ndimage.gaussian_filter(values, sigma=sigma, mode="nearest").astype(np.float32))


def directional_gradient(image: VolumeGrid,
                         mask: Optional[VolumeGrid] = None,
                         polarity: EdgePolarity = EdgePolarity.LIGHT_TO_DARK,
                         sigma_mm: float = 2.0,
                         restrict: bool = True,
                         clamp: bool = True,
                         outside_value: float = 0.0) -> VolumeGrid:
    """
    Smoothed, sign-selective edge strength of ``image``.

    Parameters:
    ----------
    image : VolumeGrid
        Intensity volume, any numeric dtype.
    mask : VolumeGrid, optional
        Region whose outward normal defines the edge direction. Without a mask
        the whole volume is used, so normals point at the nearest face.
    polarity : EdgePolarity
        LIGHT_TO_DARK keeps edges where intensity falls when moving outward,
        DARK_TO_LIGHT keeps edges where it rises.
    sigma_mm : float
        Gaussian sigma in mm. Non-positive values skip smoothing.
    restrict : bool
        If True, derivatives are taken only from voxels inside the mask and
        voxels outside are set to ``outside_value`` before smoothing.
    clamp : bool
        If True, negative values are set to 0 before smoothing so edges of the
        wrong polarity cannot bleed into the right ones.

    Returns:
    -------
    VolumeGrid
        float32 edge strength with the geometry of ``image``.
    """
    check_geometry(image=image, mask=mask)
    values = image.data.astype(np.float64)
    region = binary(mask) if mask is not None else np.ones(image.shape, dtype=bool)
    inside = region if restrict else np.ones(image.shape, dtype=bool)

    normals = outward_normals(region, image.spacing)
    along = np.zeros(image.shape)
    for axis in range(3):
        along += masked_derivative(values, inside, axis, image.spacing[axis]) * normals[axis]
    del normals

    # intensity falling outward is a positive light-to-dark edge
    edge = -along * int(polarity)
    if restrict:
        edge[~inside] = outside_value
    if clamp:
        np.maximum(edge, 0.0, out=edge)
    return smooth(image.like(edge), sigma_mm)


def inject_fiducials(cost: VolumeGrid, fiducials: VolumeGrid, scale: float) -> VolumeGrid:
    """Voxelwise maximum of ``cost`` and ``scale`` times the fiducial volume."""
    check_geometry(cost=cost, fiducials=fiducials)
    landmarks = fiducials.data.astype(np.float64) * float(scale)
    merged = np.maximum(cost.data.astype(np.float64), landmarks)
    logging.info(f"Injected {int(np.count_nonzero(fiducials.data))} fiducial voxels at scale {scale:g}")
    return cost.like(merged.astype(np.float32))
