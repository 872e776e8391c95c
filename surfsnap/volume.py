"""
Typed 3D volumes with physical voxel spacing.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Tuple

import numpy as np

from .errors import GeometryMismatchError

# relative tolerance used when comparing spacings read from different headers
SPACING_RTOL = 1e-5


class Label(IntEnum):
    """Label alphabet shared by masks, markers and watershed output."""
    UNLABELED = 0
    FOREGROUND = 1
    BACKGROUND = 2


@dataclass(frozen=True, eq=False)
class VolumeGrid:
    """
    Dense 3D array plus per-axis voxel spacing in mm.

    The array is copied on construction and made read-only, so a grid handed
    to a later stage can never be changed behind its back. ``spacing[a]`` is
    the spacing along array axis ``a``. ``affine`` is carried through
    untouched for writing results and is ignored by every computation.
    """
    data: np.ndarray
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    affine: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        data = np.array(self.data)
        if data.ndim != 3:
            raise ValueError(f"VolumeGrid needs a 3D array, got shape {data.shape}")
        spacing = tuple(float(s) for s in self.spacing)
        if len(spacing) != 3:
            raise ValueError(f"spacing must have 3 components, got {self.spacing!r}")
        if not all(np.isfinite(s) and s > 0 for s in spacing):
            raise ValueError(f"spacing must be strictly positive, got {spacing}")
        data.setflags(write=False)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "spacing", spacing)
        if self.affine is not None:
            object.__setattr__(self, "affine", np.array(self.affine, dtype=np.float64))

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.data.shape

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    def like(self, data: np.ndarray) -> "VolumeGrid":
        """New grid with this grid's spacing and affine around ``data``."""
        data = np.asarray(data)
        if data.shape != self.shape:
            raise GeometryMismatchError(f"cannot wrap array of shape {data.shape} like grid of shape {self.shape}")
        return VolumeGrid(data, self.spacing, self.affine)

    def same_geometry(self, other: "VolumeGrid") -> bool:
        return self.shape == other.shape and np.allclose(self.spacing, other.spacing, rtol=SPACING_RTOL, atol=0.0)

    def voxel_reach(self, radius_mm: float) -> Tuple[int, int, int]:
        """Number of whole voxels per axis that fit inside ``radius_mm``."""
        if radius_mm <= 0:
            return (0, 0, 0)
        return tuple(int(np.floor(radius_mm / s + 1e-9)) for s in self.spacing)

    def count(self, value: Optional[int] = None) -> int:
        """Number of non-zero voxels, or of voxels equal to ``value``."""
        if value is None:
            return int(np.count_nonzero(self.data))
        return int(np.count_nonzero(self.data == value))


def check_geometry(**grids: Optional[VolumeGrid]) -> None:
    """Raise GeometryMismatchError unless all given grids share size and spacing."""
    named = [(name, g) for name, g in grids.items() if g is not None]
    if not named:
        return
    ref_name, ref = named[0]
    for name, grid in named[1:]:
        if grid.shape != ref.shape:
            raise GeometryMismatchError(f"{name} has size {grid.shape}, {ref_name} has size {ref.shape}")
        if not ref.same_geometry(grid):
            raise GeometryMismatchError(f"{name} has spacing {grid.spacing}, {ref_name} has spacing {ref.spacing}")


def binary(grid: VolumeGrid) -> np.ndarray:
    """Boolean view of a mask grid, any non-zero voxel is on."""
    return grid.data > 0
