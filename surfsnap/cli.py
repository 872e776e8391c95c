#!/usr/bin/env python3
"""
mksurf: locate the strongest edge near a coarse surface mask.

Example:
    mksurf -i t1.nii.gz -m scalp_mask.nii.gz -o scalp.nii.gz --erode 3 --dilate 3
"""

import argparse
import json
import logging
import sys
import time

import numpy as np

from .core import process_volume_files, segment_volume
from .errors import SurfSnapError
from .gradient import EdgePolarity
from .pipeline import STAGE2_COSTS, SegmentationParams
from .watershed import BACKENDS, CONNECTIVITIES

METHOD_NAME = "directional_watershed"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="mksurf", description="Snap a mask onto the nearest strong edge with a two-stage watershed")
    ap.add_argument("-i", "--input", type=str, help="intensity input image")
    ap.add_argument("-o", "--output", type=str, help="output mask image")
    ap.add_argument("-m", "--mask", type=str, help="mask image, used to generate markers")
    ap.add_argument("-f", "--fiducial", type=str, default="", help="fiducial mask image, pins the boundary where landmarks are known")
    ap.add_argument("--smoothing", type=float, default=2.0, help="gradient smoothing sigma (mm)")
    ap.add_argument("--erode", type=float, default=3.0, help="erosion creating the foreground marker (mm)")
    ap.add_argument("--dilate", type=float, default=3.0, help="dilation bounding the background marker (mm)")
    ap.add_argument("-d", "--debug", action="store_true", help="save intermediate volumes")
    ap.add_argument("--debug-prefix", type=str, default="/tmp/align", help="path prefix of debug volumes")
    ap.add_argument("--debug-previews", action="store_true", help="also save PNG mid-slices of debug label volumes")
    ap.add_argument("--darktolight", action="store_true", help="look for dark to light edge")
    ap.add_argument("--connectivity", type=int, default=6, choices=sorted(CONNECTIVITIES))
    ap.add_argument("--backend", type=str, default="flood", choices=BACKENDS)
    ap.add_argument("--stage2-cost", type=str, default="gradient", choices=STAGE2_COSTS)
    ap.add_argument("--workers", type=int, default=0, help="threads for morphology passes, 0 means single threaded")
    ap.add_argument("--progress", action="store_true", help="show watershed progress")
    ap.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    ap.add_argument("--run-tests", action="store_true", help="run the built-in synthetic check and exit")
    return ap


def params_from_args(args) -> SegmentationParams:
    return SegmentationParams(
        erode_mm=args.erode,
        dilate_mm=args.dilate,
        smooth_mm=args.smoothing,
        polarity=EdgePolarity.DARK_TO_LIGHT if args.darktolight else EdgePolarity.LIGHT_TO_DARK,
        connectivity=args.connectivity,
        backend=args.backend,
        stage2_cost=args.stage2_cost,
        workers=args.workers,
        progress=args.progress,
    )


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(message)s")

    if args.run_tests:
        _run_tests()
        return 0

    missing = [flag for flag, value in (("--input", args.input), ("--output", args.output), ("--mask", args.mask)) if not value]
    if missing:
        ap.error(f"the following arguments are required: {', '.join(missing)}")

    params = params_from_args(args)
    t0 = time.time()
    try:
        result = process_volume_files(
            args.input,
            args.mask,
            args.output,
            fiducial_path=args.fiducial or None,
            params=params,
            debug_prefix=args.debug_prefix if args.debug else None,
            debug_previews=args.debug_previews,
        )
    except SurfSnapError as e:
        logging.error(f"Error on {args.input}: {e}")
        return 1
    ms = (time.time() - t0) * 1000.0

    print(json.dumps({
        "input": args.input,
        "mask": args.mask,
        "output": args.output,
        "fiducial": args.fiducial or None,
        "shape": list(result.shape),
        "foreground_voxels": result.count(),
        "runtime_ms": round(ms, 2),
        "erode_mm": params.erode_mm,
        "dilate_mm": params.dilate_mm,
        "smooth_mm": params.smooth_mm,
        "polarity": params.polarity.name.lower(),
        "conn": params.connectivity,
        "method": METHOD_NAME,
    }))
    return 0


# --------------------------- Minimal tests ---------------------------

def _synthetic_case(n: int = 25, radius: float = 7.0, mask_radius: float = 5.0):
    c = n // 2
    x, y, z = np.mgrid[:n, :n, :n]
    r = np.sqrt((x - c) ** 2 + (y - c) ** 2 + (z - c) ** 2)
    image = np.where(r <= radius, 100.0, 0.0).astype(np.float32)
    mask = (r <= mask_radius).astype(np.uint8)
    return image, mask, r


def _run_tests():
    logging.info("Running synthetic test")
    image, mask, r = _synthetic_case()
    t0 = time.time()
    out = segment_volume(image, mask, erode_mm=1.0, dilate_mm=3.0, smooth_mm=1.0)
    ms = (time.time() - t0) * 1000.0
    assert out[r <= 5.0].all(), "output must contain the input mask"
    assert not out[r >= 9.0].any(), "output must stay inside the background marker"
    logging.info(f"OK, {int(out.sum())} foreground voxels")
    print(json.dumps({"test": "ok", "foreground_voxels": int(out.sum()), "runtime_ms": round(ms, 2)}))


if __name__ == "__main__":
    sys.exit(main())
