"""
NIfTI volume I/O and debug output.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

import nibabel as nib
import numpy as np
from nibabel.filebasedimages import ImageFileError
from PIL import Image

from .errors import InputError
from .volume import Label, VolumeGrid

# on-disk component type -> dtype the pipeline works in, anything else is float32
WORKING_DTYPES = {
    np.dtype(np.int16): np.dtype(np.int16),
    np.dtype(np.uint16): np.dtype(np.uint16),
    np.dtype(np.int32): np.dtype(np.int32),
}

LABEL_COLORS = {
    Label.UNLABELED: (0, 0, 0),
    Label.FOREGROUND: (230, 57, 70),
    Label.BACKGROUND: (69, 123, 157),
}


# --------------------------- reading ---------------------------

def _load(path):
    p = Path(path)
    if not p.exists():
        raise InputError(path, "file not found")
    try:
        return nib.load(str(p))
    except (ImageFileError, OSError, ValueError) as e:
        raise InputError(path, f"unreadable volume ({e})") from e


def read_volume_info(path) -> Tuple[np.dtype, int]:
    """On-disk component dtype and number of dimensions."""
    img = _load(path)
    return np.dtype(img.get_data_dtype()), len(img.shape)


def working_dtype(component) -> np.dtype:
    return WORKING_DTYPES.get(np.dtype(component), np.dtype(np.float32))


def read_volume(path, dtype=None) -> VolumeGrid:
    """Load a 3D NIfTI volume, optionally cast to ``dtype``."""
    img = _load(path)
    if len(img.shape) != 3:
        raise InputError(path, f"expected a 3D volume, got {len(img.shape)} dimensions")
    data = np.asanyarray(img.dataobj)
    if dtype is not None:
        data = data.astype(dtype)
    spacing = tuple(float(z) for z in img.header.get_zooms()[:3])
    if not all(z > 0 for z in spacing):
        raise InputError(path, f"voxel spacing must be positive, got {spacing}")
    return VolumeGrid(data, spacing, img.affine)


def read_mask(path) -> VolumeGrid:
    """Load a mask volume as uint8 with every non-zero voxel set to 1."""
    grid = read_volume(path)
    return grid.like((grid.data != 0).astype(np.uint8))


def read_fiducials(path) -> VolumeGrid:
    """Load a fiducial volume as uint8, keeping graded landmark weights."""
    return read_volume(path, np.uint8)


# --------------------------- writing ---------------------------

def write_volume(grid: VolumeGrid, path) -> None:
    affine = grid.affine if grid.affine is not None else np.diag([*grid.spacing, 1.0])
    img = nib.Nifti1Image(np.asarray(grid.data), affine)
    img.header.set_data_dtype(grid.dtype)
    img.header.set_zooms(grid.spacing)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    nib.save(img, str(path))


def label_palette() -> list:
    """768-entry RGB palette for indexed previews of label volumes."""
    pal = np.zeros((256, 3), dtype=np.uint8)
    for label, rgb in LABEL_COLORS.items():
        pal[int(label)] = rgb
    return pal.flatten().tolist()


def save_label_preview(labels: VolumeGrid, out_path, axis: int = 2, index: Optional[int] = None) -> None:
    """Save one slice of a label volume as an indexed PNG."""
    if index is None:
        index = labels.shape[axis] // 2
    plane = np.take(np.asarray(labels.data, dtype=np.uint8), index, axis=axis)
    # rows of the PNG run along the second remaining array axis
    plane = np.ascontiguousarray(plane.T)
    im = Image.frombytes("P", (plane.shape[1], plane.shape[0]), plane.tobytes())
    im.putpalette(label_palette())
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    im.save(str(out_path), format="PNG")


class DebugWriter:
    """
    Debug sink that writes every intermediate volume to
    ``<prefix>_<name><suffix>``, plus a mid-slice PNG for label volumes when
    ``previews`` is set.
    """

    def __init__(self, prefix: str = "/tmp/align", suffix: str = ".nii.gz", previews: bool = False):
        self.prefix = str(prefix)
        self.suffix = suffix
        self.previews = previews
        self.written = []

    def path_for(self, name: str) -> str:
        return f"{self.prefix}_{name}{self.suffix}"

    def __call__(self, name: str, grid: VolumeGrid) -> None:
        path = self.path_for(name)
        write_volume(grid, path)
        self.written.append(path)
        logging.info(f"Debug volume {name} -> {path}")
        if self.previews and grid.dtype == np.uint8:
            png = f"{self.prefix}_{name}.png"
            save_label_preview(grid, png)
            self.written.append(png)
