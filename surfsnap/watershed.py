"""
Marker-controlled watershed by priority flooding.

Every labeled marker voxel next to an unlabeled one is queued with its cost.
The lowest-cost entry is popped, and each unlabeled neighbour takes its label
and is queued with its own cost. Equal costs leave the queue in insertion
order, so the result depends only on the inputs. No watershed line is
marked, every contested voxel goes to the region that reaches it first.
"""

import heapq
import itertools
import logging
import time
from typing import List

import numpy as np
from scipy import ndimage
from tqdm import tqdm

from .errors import WatershedConsistencyError
from .volume import Label, VolumeGrid, check_geometry

BACKENDS = ("flood", "skimage")
CONNECTIVITIES = {6: 1, 18: 2, 26: 3}

# label given to the one-voxel frame around the padded volume, never flooded
_FRAME = 255
_PROGRESS_CHUNK = 4096


def _neighbor_offsets(shape, connectivity: int = 6) -> List[int]:
    """Flat index offsets of the neighbours of a voxel in a C-ordered array of ``shape``."""
    if connectivity not in CONNECTIVITIES:
        raise ValueError(f"connectivity must be 6, 18 or 26, got {connectivity}")
    rank = CONNECTIVITIES[connectivity]
    offs = []
    for dx, dy, dz in itertools.product((-1, 0, 1), repeat=3):
        n = abs(dx) + abs(dy) + abs(dz)
        if 0 < n <= rank:
            offs.append((dx * shape[1] + dy) * shape[2] + dz)
    return offs


def _sanitize_cost(cost: np.ndarray) -> np.ndarray:
    values = np.asarray(cost, dtype=np.float64)
    finite = np.isfinite(values)
    if finite.all():
        return values
    top = float(values[finite].max()) if finite.any() else 0.0
    logging.warning(f"{int((~finite).sum())} non-finite cost values replaced by {top:g}")
    return np.where(finite, values, top)


def _flood(cost: np.ndarray, markers: np.ndarray, connectivity: int, progress: bool) -> np.ndarray:
    structure = ndimage.generate_binary_structure(3, CONNECTIVITIES[connectivity])
    unlabeled = markers == Label.UNLABELED
    seeds = ~unlabeled & ndimage.binary_dilation(unlabeled, structure=structure)

    padded = np.pad(markers.astype(np.uint8), 1, mode="constant", constant_values=_FRAME)
    label = padded.ravel()
    w = np.pad(cost, 1, mode="edge").ravel()
    offs = _neighbor_offsets(padded.shape, connectivity)

    xs, ys, zs = np.nonzero(seeds)
    idx = np.ravel_multi_index((xs + 1, ys + 1, zs + 1), padded.shape)
    order = np.lexsort((idx, w[idx]))
    heap = [(float(w[i]), n, int(i)) for n, i in enumerate(idx[order])]
    counter = len(heap)
    push = heapq.heappush
    pop = heapq.heappop

    pops = 0
    assigned = 0
    with tqdm(total=int(unlabeled.sum()), desc="Watershed", unit="vox", disable=not progress) as pbar:
        while heap:
            _, _, i = pop(heap)
            pops += 1
            lab = label[i]
            for off in offs:
                j = i + off
                if label[j] == 0:
                    label[j] = lab
                    push(heap, (float(w[j]), counter, j))
                    counter += 1
                    assigned += 1
            if assigned >= _PROGRESS_CHUNK:
                pbar.update(assigned)
                assigned = 0
        pbar.update(assigned)

    logging.debug(f"Watershed flood: {pops} pops, {len(offs)}-connected")
    return padded[1:-1, 1:-1, 1:-1].copy()


def _flood_skimage(cost: np.ndarray, markers: np.ndarray, connectivity: int) -> np.ndarray:
    from skimage.segmentation import watershed as sk_watershed

    out = sk_watershed(cost, markers=markers.astype(np.int32),
                       connectivity=CONNECTIVITIES[connectivity], watershed_line=False)
    return out.astype(np.uint8)


def watershed(cost: VolumeGrid, markers: VolumeGrid, connectivity: int = 6,
              backend: str = "flood", progress: bool = False) -> VolumeGrid:
    """
    Flood ``cost`` from ``markers`` and return the completed label volume.

    Parameters:
    ----------
    cost : VolumeGrid
        Edge strength, lower values are flooded first.
    markers : VolumeGrid
        uint8 labels, 0 = unlabeled, any other value is a fixed seed label.
    connectivity : int
        6, 18 or 26 neighbours. Default 6.
    backend : str
        "flood" for the built-in priority flood, "skimage" for
        skimage.segmentation.watershed.
    progress : bool
        Show a tqdm progress bar while flooding.

    Raises:
    ------
    WatershedConsistencyError
        If any voxel is still unlabeled after flooding.
    """
    check_geometry(cost=cost, markers=markers)
    if connectivity not in CONNECTIVITIES:
        raise ValueError(f"connectivity must be 6, 18 or 26, got {connectivity}")
    if backend not in BACKENDS:
        raise ValueError(f"backend must be one of {BACKENDS}, got {backend!r}")

    values = _sanitize_cost(cost.data)
    seeds = np.asarray(markers.data, dtype=np.uint8)

    t0 = time.time()
    if backend == "skimage":
        labels = _flood_skimage(values, seeds, connectivity)
    else:
        labels = _flood(values, seeds, connectivity, progress)
    ms = (time.time() - t0) * 1000.0

    left = int(np.count_nonzero(labels == Label.UNLABELED))
    if left:
        raise WatershedConsistencyError(left)
    logging.info(f"Watershed {cost.shape[0]}x{cost.shape[1]}x{cost.shape[2]}, {backend}, {ms:.2f} ms")
    return markers.like(labels)


def select_label(labels: VolumeGrid, target: int = Label.FOREGROUND) -> VolumeGrid:
    """Binary uint8 mask of voxels equal to ``target``."""
    return labels.like((labels.data == target).astype(np.uint8))
