"""
Exceptions raised by the surfsnap segmentation pipeline.
"""


class SurfSnapError(Exception):
    """Base class for fatal pipeline failures."""


class InputError(SurfSnapError):
    """A volume could not be read or is not a 3D volume."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class GeometryMismatchError(SurfSnapError, ValueError):
    """Volumes used together do not share size and spacing."""


class WatershedConsistencyError(SurfSnapError, RuntimeError):
    """Voxels were left unlabeled after flooding."""

    def __init__(self, unlabeled: int):
        self.unlabeled = int(unlabeled)
        super().__init__(
            f"{self.unlabeled} voxels left unlabeled after flooding, "
            f"marker set has no region reaching them"
        )
