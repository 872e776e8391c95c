import unittest

import numpy as np
import numpy.testing as nptest

from surfsnap.core import segment_volume
from surfsnap.errors import GeometryMismatchError
from surfsnap.gradient import EdgePolarity
from surfsnap.pipeline import SegmentationParams, run_segmentation
from surfsnap.volume import Label, VolumeGrid

N = 33
CENTER = 16


def radius_map(n=N, c=CENTER):
    x, y, z = np.mgrid[:n, :n, :n]
    return np.sqrt((x - c) ** 2 + (y - c) ** 2 + (z - c) ** 2)


def sphere_case():
    """Bright ball of radius 8 with an undersized mask of radius 6."""
    r = radius_map()
    intensity = VolumeGrid(np.where(r <= 8.0, 100.0, 0.0).astype(np.float32))
    mask = intensity.like((r <= 6.0).astype(np.uint8))
    return intensity, mask, r


PARAMS = SegmentationParams(erode_mm=2.0, dilate_mm=4.0, smooth_mm=1.0)


class TestSegmentation(unittest.TestCase):
    def test_snaps_to_sphere_edge(self):
        intensity, mask, r = sphere_case()
        out = run_segmentation(intensity, mask, params=PARAMS).data.astype(bool)
        self.assertTrue(out[r <= 7.0].all())
        self.assertFalse(out[r >= 9.5].any())
        inside = mask.data.astype(bool)
        self.assertTrue(out[inside].all())
        self.assertGreater(out.sum(), inside.sum())

    def test_small_sphere_scenario(self):
        r = radius_map(10, 5)
        intensity = VolumeGrid(np.where(r <= 4.0, 100.0, 0.0).astype(np.float32))
        mask = intensity.like((r <= 3.0).astype(np.uint8))
        params = SegmentationParams(erode_mm=1.0, dilate_mm=2.0, smooth_mm=1.0)
        out = run_segmentation(intensity, mask, params=params).data.astype(bool)
        self.assertTrue(out[r <= 3.0].all())
        self.assertFalse(out[r > 5.0].any())
        self.assertGreater(out.sum(), mask.count())

    def test_deterministic(self):
        intensity, mask, _ = sphere_case()
        a = run_segmentation(intensity, mask, params=PARAMS)
        b = run_segmentation(intensity, mask, params=PARAMS)
        nptest.assert_array_equal(a.data, b.data)
        self.assertEqual(a.dtype, np.uint8)

    def test_dark_to_light_on_inverted_image(self):
        intensity, mask, _ = sphere_case()
        inverted = intensity.like(100.0 - intensity.data)
        params = SegmentationParams(erode_mm=2.0, dilate_mm=4.0, smooth_mm=1.0,
                                    polarity=EdgePolarity.DARK_TO_LIGHT)
        a = run_segmentation(intensity, mask, params=PARAMS)
        b = run_segmentation(inverted, mask, params=params)
        nptest.assert_array_equal(a.data, b.data)

    def test_fiducial_shell_pins_boundary(self):
        # a lone fiducial next to the background marker is claimed by it first, a closed shell is not
        r = radius_map()
        intensity = VolumeGrid(np.full((N, N, N), 50.0, dtype=np.float32))
        mask = intensity.like((r <= 6.0).astype(np.uint8))
        fiducials = intensity.like(((r >= 7.5) & (r < 8.5)).astype(np.uint8))
        out = run_segmentation(intensity, mask, fiducials, PARAMS).data.astype(bool)
        self.assertTrue(out[r < 7.5].all())
        self.assertFalse(out[r >= 8.5].any())
        self.assertGreater(out.sum(), mask.count())

    def test_negative_erosion_is_recovered(self):
        intensity, mask, r = sphere_case()
        params = SegmentationParams(erode_mm=-1.0, dilate_mm=4.0, smooth_mm=1.0)
        with self.assertLogs(level="WARNING"):
            out = run_segmentation(intensity, mask, params=params).data.astype(bool)
        self.assertTrue(out[mask.data.astype(bool)].all())
        self.assertFalse(out[r >= 9.5].any())

    def test_debug_artifacts(self):
        intensity, mask, _ = sphere_case()
        seen = {}
        run_segmentation(intensity, mask, params=PARAMS, debug=lambda name, grid: seen.setdefault(name, grid))
        self.assertEqual(set(seen), {"filled", "head", "marker1", "grad1", "stage1", "grad2", "marker2"})
        marker2 = seen["marker2"].data
        self.assertTrue(set(np.unique(marker2)) <= {Label.UNLABELED, Label.FOREGROUND, Label.BACKGROUND})
        # stage 2 foreground marker is the stage 1 result
        nptest.assert_array_equal(marker2 == Label.FOREGROUND, seen["stage1"].data.astype(bool))
        # stage 2 background marker is the original one
        nptest.assert_array_equal(marker2 == Label.BACKGROUND, seen["marker1"].data == Label.BACKGROUND)
        self.assertGreaterEqual(seen["grad1"].data.min(), 0.0)

    def test_intensity_stage2_cost(self):
        intensity, mask, r = sphere_case()
        params = SegmentationParams(erode_mm=2.0, dilate_mm=4.0, smooth_mm=1.0, stage2_cost="intensity")
        out = run_segmentation(intensity, mask, params=params).data.astype(bool)
        self.assertTrue(out[r <= 7.0].all())
        self.assertFalse(out[r > 10.5].any())

    def test_geometry_mismatch(self):
        intensity, mask, _ = sphere_case()
        with self.assertRaises(GeometryMismatchError):
            run_segmentation(intensity, VolumeGrid(np.zeros((N, N, N - 1), dtype=np.uint8)))
        with self.assertRaises(GeometryMismatchError):
            run_segmentation(intensity, VolumeGrid(mask.data, (1.0, 1.0, 2.0)))
        with self.assertRaises(GeometryMismatchError):
            run_segmentation(intensity, mask, VolumeGrid(np.zeros((3, 3, 3), dtype=np.uint8)))


class TestParams(unittest.TestCase):
    def test_defaults(self):
        params = SegmentationParams()
        self.assertEqual((params.erode_mm, params.dilate_mm, params.smooth_mm), (3.0, 3.0, 2.0))
        self.assertEqual(params.polarity, EdgePolarity.LIGHT_TO_DARK)
        self.assertEqual(params.connectivity, 6)

    def test_polarity_from_int(self):
        self.assertIs(SegmentationParams(polarity=-1).polarity, EdgePolarity.DARK_TO_LIGHT)

    def test_invalid_choices(self):
        with self.assertRaises(ValueError):
            SegmentationParams(connectivity=4)
        with self.assertRaises(ValueError):
            SegmentationParams(backend="gpu")
        with self.assertRaises(ValueError):
            SegmentationParams(stage2_cost="hessian")


class TestSegmentVolume(unittest.TestCase):
    def test_array_api(self):
        intensity, mask, r = sphere_case()
        out = segment_volume(np.array(intensity.data), np.array(mask.data), erode_mm=2.0, dilate_mm=4.0, smooth_mm=1.0)
        self.assertIsInstance(out, np.ndarray)
        self.assertEqual(out.shape, (N, N, N))
        self.assertTrue(out[r <= 7.0].all())

    def test_array_api_validation(self):
        with self.assertRaises(ValueError):
            segment_volume(np.zeros((4, 4)), np.zeros((4, 4)))
        with self.assertRaises(GeometryMismatchError):
            segment_volume(np.zeros((4, 4, 4)), np.zeros((4, 4, 5)))


if __name__ == '__main__':
    unittest.main()
