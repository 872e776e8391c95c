import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

import numpy as np

from surfsnap.cli import build_parser, main, params_from_args
from surfsnap.gradient import EdgePolarity
from surfsnap.volume import VolumeGrid
from surfsnap.volume_io import read_volume, write_volume


class TestParser(unittest.TestCase):
    def test_defaults(self):
        args = build_parser().parse_args(["-i", "a", "-o", "b", "-m", "c"])
        params = params_from_args(args)
        self.assertEqual((params.erode_mm, params.dilate_mm, params.smooth_mm), (3.0, 3.0, 2.0))
        self.assertEqual(params.polarity, EdgePolarity.LIGHT_TO_DARK)
        self.assertEqual(args.debug_prefix, "/tmp/align")
        self.assertFalse(args.debug)

    def test_flags(self):
        args = build_parser().parse_args(["-i", "a", "-o", "b", "-m", "c", "--darktolight", "--erode", "1.5",
                                          "--connectivity", "26", "--stage2-cost", "intensity"])
        params = params_from_args(args)
        self.assertEqual(params.polarity, EdgePolarity.DARK_TO_LIGHT)
        self.assertEqual(params.erode_mm, 1.5)
        self.assertEqual(params.connectivity, 26)
        self.assertEqual(params.stage2_cost, "intensity")


class TestMain(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name
        n, c = 21, 10
        x, y, z = np.mgrid[:n, :n, :n]
        self.r = np.sqrt((x - c) ** 2 + (y - c) ** 2 + (z - c) ** 2)
        write_volume(VolumeGrid(np.where(self.r <= 6.0, 100, 0).astype(np.int16)), self.path("t1.nii.gz"))
        write_volume(VolumeGrid((self.r <= 4.0).astype(np.uint8)), self.path("mask.nii.gz"))

    def tearDown(self):
        self._tmp.cleanup()

    def path(self, name):
        return os.path.join(self.tmp, name)

    def test_writes_output_and_summary(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            code = main(["-i", self.path("t1.nii.gz"), "-m", self.path("mask.nii.gz"), "-o", self.path("out.nii.gz"),
                         "--erode", "1", "--dilate", "3", "--smoothing", "1"])
        self.assertEqual(code, 0)
        summary = json.loads(buf.getvalue())
        self.assertEqual(summary["method"], "directional_watershed")
        self.assertEqual(summary["shape"], [21, 21, 21])
        self.assertEqual(summary["polarity"], "light_to_dark")
        out = read_volume(self.path("out.nii.gz"))
        self.assertEqual(summary["foreground_voxels"], out.count())
        self.assertTrue(out.data[self.r <= 4.0].all())

    def test_debug_prefix(self):
        prefix = self.path("dbg")
        with redirect_stdout(io.StringIO()):
            code = main(["-i", self.path("t1.nii.gz"), "-m", self.path("mask.nii.gz"), "-o", self.path("out.nii.gz"),
                         "-d", "--debug-prefix", prefix, "--erode", "1", "--smoothing", "1"])
        self.assertEqual(code, 0)
        self.assertTrue(os.path.exists(prefix + "_marker2.nii.gz"))

    def test_missing_input_returns_error(self):
        with self.assertLogs(level="ERROR"):
            code = main(["-i", self.path("missing.nii.gz"), "-m", self.path("mask.nii.gz"),
                         "-o", self.path("out.nii.gz")])
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(self.path("out.nii.gz")))

    def test_required_arguments(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            main(["-i", self.path("t1.nii.gz")])
        self.assertEqual(ctx.exception.code, 2)

    def test_run_tests(self):
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.assertEqual(main(["--run-tests"]), 0)
        self.assertEqual(json.loads(buf.getvalue())["test"], "ok")


if __name__ == '__main__':
    unittest.main()
