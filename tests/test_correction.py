"""Tests for the ISP correction stages."""

import numpy as np
import pytest

from isp_pipeline.calibration.calibration_model import (
    DEFAULT_COLOR_SHADING,
    ColorShadingProfile,
    barrel_factor,
)
from isp_pipeline.correction.correction_model import (
    correct_black_level,
    correct_chromatic_aberration,
    correct_color_shading,
    correct_dead_pixels,
    correct_lens_distortion,
    correct_vignetting,
    correct_white_balance,
    correct_white_balance_auto,
    estimate_black_level,
    invert_barrel_radius,
)
from isp_pipeline.optics.optics_model import (
    apply_chromatic_aberration,
    apply_color_shading,
    apply_lens_distortion,
    apply_vignetting,
)
from isp_pipeline.sensor.sensor_model import (
    apply_black_level_offset,
    apply_white_balance_error,
    inject_dead_pixels,
    synthesize_optical_black,
)


def _flat_index(shape, y, x, c):
    h, w, ch = shape
    return (y * w + x) * ch + c


def _max_abs_diff(a, b):
    return int(np.abs(a.astype(int) - b.astype(int)).max())


class TestDeadPixelCorrection:
    """Tests for correct_dead_pixels."""

    def test_interior_mean_of_four_neighbors(self):
        """Test an interior sample becomes the truncated mean of its 4 neighbors."""
        img = np.zeros((5, 5, 3), dtype=np.uint8)
        img[1, 2, 1], img[3, 2, 1], img[2, 1, 1], img[2, 3, 1] = 10, 20, 30, 41
        # other channels must not leak in
        img[2, 2, 0] = 200
        img[1, 2, 2] = 200
        dead = np.array([_flat_index(img.shape, 2, 2, 1)])
        out = correct_dead_pixels(img, dead)
        assert out[2, 2, 1] == 25  # 101 // 4

    def test_corner_uses_in_bounds_neighbors(self):
        img = np.zeros((4, 4, 3), dtype=np.uint8)
        img[0, 1, 0], img[1, 0, 0] = 50, 61
        img[3, 3, 0] = 99  # far away, must not matter
        out = correct_dead_pixels(img, np.array([0]))
        assert out[0, 0, 0] == 55

    def test_restores_uniform_image_exactly(self, gray100):
        """Test isolated dead samples on a flat field are repaired exactly."""
        damaged, dead = inject_dead_pixels(gray100, 0.001, np.random.default_rng(11))
        h, w, c = gray100.shape
        ys, xs, _ = np.unravel_index(dead, gray100.shape)
        # keep only samples whose same-channel neighbors are all alive
        mask = np.zeros(gray100.shape, dtype=bool)
        mask.reshape(-1)[dead] = True
        isolated = []
        for idx, y, x in zip(dead, ys, xs):
            ch = idx % c
            neighbors = [(y - 1, x), (y + 1, x), (y, x - 1), (y, x + 1)]
            if not any(0 <= ny < h and 0 <= nx < w and mask[ny, nx, ch] for ny, nx in neighbors):
                isolated.append(idx)
        out = correct_dead_pixels(damaged, dead)
        assert len(isolated) > 0
        np.testing.assert_array_equal(out.reshape(-1)[isolated], 100)

    def test_dead_neighbor_contributes_zero(self):
        """Test neighbors are read from the uncorrected input."""
        img = np.full((3, 3, 3), 100, dtype=np.uint8)
        img[1, 1, 0] = 0
        img[1, 2, 0] = 0
        out = correct_dead_pixels(img, np.array([_flat_index(img.shape, 1, 1, 0), _flat_index(img.shape, 1, 2, 0)]))
        assert out[1, 1, 0] == 75   # (100 + 100 + 100 + 0) // 4
        assert out[1, 2, 0] == 66   # (100 + 100 + 0) // 3

    def test_only_listed_samples_change(self, gradient64):
        dead = np.array([5, 1000, 4000])
        out = correct_dead_pixels(gradient64, dead)
        changed = np.flatnonzero(out.reshape(-1) != gradient64.reshape(-1))
        assert set(changed) <= set(dead)

    def test_single_pixel_image_unchanged(self):
        img = np.full((1, 1, 3), 42, dtype=np.uint8)
        np.testing.assert_array_equal(correct_dead_pixels(img, np.array([0, 1, 2])), img)

    def test_empty_map(self, gradient64):
        out = correct_dead_pixels(gradient64, np.zeros(0, dtype=np.int64))
        np.testing.assert_array_equal(out, gradient64)
        assert out is not gradient64

    def test_out_of_range_index_raises(self, gray100):
        with pytest.raises(ValueError, match="out of range"):
            correct_dead_pixels(gray100, np.array([gray100.size]))


class TestBlackLevelCorrection:
    """Tests for estimate_black_level / correct_black_level."""

    @pytest.mark.parametrize(
        "rows, expected",
        [
            ([[20, 20, 20]], 20),
            ([[19, 20, 21]], 20),
            ([[20, 20, 21]], 20),      # 20.33 truncates
            ([[255, 255, 255]], 255),
            ([[0, 0, 0], [0, 0, 3]], 0),
        ],
    )
    def test_estimate(self, rows, expected):
        assert estimate_black_level(np.array(rows, dtype=np.uint8)) == expected

    def test_estimate_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            estimate_black_level(np.zeros((10, 2), dtype=np.uint8))
        with pytest.raises(ValueError):
            estimate_black_level(np.zeros((0, 3), dtype=np.uint8))

    def test_subtracts_and_clamps(self):
        img = np.array([[[120, 10, 255]]], dtype=np.uint8)
        out = correct_black_level(img, np.full((10, 3), 20, dtype=np.uint8))
        np.testing.assert_array_equal(out[0, 0], [100, 0, 235])

    def test_round_trip_uniform_gray(self, gray100):
        """Test gray 100 with offset 20 comes back to ~100."""
        degraded = apply_black_level_offset(gray100, 20)
        ob = synthesize_optical_black(20, np.random.default_rng(1234))
        out = correct_black_level(degraded, ob)
        assert np.all(out == out[0, 0, 0])
        assert abs(int(out[0, 0, 0]) - 100) <= 4

    def test_missing_samples_raise(self, gray100):
        with pytest.raises(ValueError, match="optical-black"):
            correct_black_level(gray100, None)


class TestOpticalInverses:
    """Tests for the inverse vignetting, shading, lateral color and lens stages."""

    def test_vignetting_round_trip(self, gray100):
        coeffs = (0.0, 0.0, 0.0, -0.2, 1.0)
        out = correct_vignetting(apply_vignetting(gray100, coeffs), coeffs)
        assert _max_abs_diff(out, gray100) <= 2

    def test_vignetting_non_positive_gain_passes_through(self, gradient64):
        np.testing.assert_array_equal(correct_vignetting(gradient64, (0, 0, 0, 0, -1.0)), gradient64)

    def test_vignetting_brightens_corners(self, gray100):
        out = correct_vignetting(gray100, (-0.5, 0.0, 0.0, -0.2, 1.0))
        assert out[0, 0, 0] == 255
        assert out[50, 50, 0] == 100

    def test_color_shading_round_trip(self, gray100):
        profile = ColorShadingProfile(DEFAULT_COLOR_SHADING)
        out = correct_color_shading(apply_color_shading(gray100, profile), profile)
        assert _max_abs_diff(out, gray100) <= 2

    def test_chromatic_zero_coefficients_identity(self, gradient64):
        np.testing.assert_array_equal(correct_chromatic_aberration(gradient64, (0, 0), (0, 0)), gradient64)

    def test_chromatic_round_trip(self, gradient64):
        r, b = (0.006, 0.003), (-0.006, -0.003)
        out = correct_chromatic_aberration(apply_chromatic_aberration(gradient64, r, b), r, b)
        assert _max_abs_diff(out, gradient64) <= 3
        np.testing.assert_array_equal(out[..., 1], gradient64[..., 1])

    def test_invert_barrel_radius(self):
        """Test the Newton inverse undoes r·(a + b·r² + c·r⁴)."""
        coeffs = (0.7, 0.3, -0.1)
        r = np.linspace(0.0, 0.9, 50, dtype=np.float32)
        target = r * barrel_factor(r, coeffs)
        np.testing.assert_allclose(invert_barrel_radius(target, coeffs), r, atol=1e-4)

    def test_invert_barrel_radius_identity(self):
        t = np.array([0.0, 0.3, 1.0], dtype=np.float32)
        np.testing.assert_allclose(invert_barrel_radius(t, (1.0, 0.0, 0.0)), t)

    def test_lens_identity_coefficients(self, gradient64):
        assert _max_abs_diff(correct_lens_distortion(gradient64, (1.0, 0.0, 0.0)), gradient64) <= 1

    def test_lens_round_trip_center(self, gradient64):
        """Test distort + undistort is close to identity away from the border."""
        coeffs = (0.7, 0.3, -0.1)
        out = correct_lens_distortion(apply_lens_distortion(gradient64, coeffs), coeffs)
        inner = (slice(20, 44), slice(20, 44))
        diff = np.abs(out[inner].astype(int) - gradient64[inner].astype(int))
        assert diff.mean() < 2.0
        assert diff.max() <= 6

    def test_extra_channel_copied(self, rgba_image):
        out = correct_lens_distortion(rgba_image, (0.7, 0.3, -0.1))
        assert np.all(out[..., 3] == 77)


class TestWhiteBalanceCorrection:
    """Tests for correct_white_balance / correct_white_balance_auto."""

    def test_round_trip(self, gray100):
        out = correct_white_balance(apply_white_balance_error(gray100, 3500), 3500)
        assert _max_abs_diff(out, gray100) <= 2

    def test_gray_world(self):
        """Test R and B means are pulled to the G mean."""
        img = np.empty((10, 10, 3), dtype=np.uint8)
        img[...] = [100, 150, 200]
        out = correct_white_balance_auto(img)
        assert np.all(out == 150)

    def test_gray_world_zero_channel(self):
        img = np.empty((4, 4, 3), dtype=np.uint8)
        img[...] = [0, 80, 40]
        out = correct_white_balance_auto(img)
        np.testing.assert_array_equal(out[0, 0], [0, 80, 80])
