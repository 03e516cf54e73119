"""Tests for the lens-side degradation stages."""

import numpy as np
import pytest

from isp_pipeline.calibration.calibration_model import DEFAULT_COLOR_SHADING, ColorShadingProfile
from isp_pipeline.optics.optics_model import (
    apply_chromatic_aberration,
    apply_color_shading,
    apply_lens_distortion,
    apply_vignetting,
    radial_angle,
)


class TestRadialAngle:
    """Tests for radial_angle."""

    def test_center_is_zero(self):
        dx = np.array([0.0, 1.0, 0.0], dtype=np.float32)
        dy = np.array([0.0, 0.0, 1.0], dtype=np.float32)
        np.testing.assert_allclose(radial_angle(dx, dy), [0.0, 0.0, np.pi / 2], rtol=1e-6)


class TestLensDistortion:
    """Tests for apply_lens_distortion."""

    def test_identity_coefficients(self, gradient64):
        """Test (1, 0, 0) leaves the image unchanged up to rounding."""
        out = apply_lens_distortion(gradient64, (1.0, 0.0, 0.0))
        diff = np.abs(out.astype(int) - gradient64.astype(int))
        assert diff.max() <= 1

    def test_barrel_pulls_content_outward(self):
        """Test a < 1 magnifies the center: a centered dot grows."""
        img = np.zeros((64, 64, 3), dtype=np.uint8)
        img[28:36, 28:36] = 255
        out = apply_lens_distortion(img, (0.5, 0.0, 0.0))
        assert (out[..., 1] > 128).sum() > (img[..., 1] > 128).sum()

    def test_center_pixel_maps_to_itself(self, gradient64):
        out = apply_lens_distortion(gradient64, (0.7, 0.3, -0.1))
        np.testing.assert_array_equal(out[32, 32], gradient64[32, 32])

    def test_extreme_coefficients_saturate_without_error(self, gradient64):
        out = apply_lens_distortion(gradient64, (1e6, -1e6, 1e6))
        assert out.shape == gradient64.shape
        assert out.dtype == np.uint8

    def test_input_untouched_and_extra_channel_copied(self, rgba_image):
        before = rgba_image.copy()
        out = apply_lens_distortion(rgba_image, (0.7, 0.3, -0.1))
        np.testing.assert_array_equal(rgba_image, before)
        assert np.all(out[..., 3] == 77)
        assert out is not rgba_image


class TestColorShading:
    """Tests for apply_color_shading."""

    def test_unit_profile_is_identity(self, gradient64):
        profile = ColorShadingProfile(((1.0, 1.0, 1.0),) * 4)
        np.testing.assert_array_equal(apply_color_shading(gradient64, profile), gradient64)

    def test_default_profile_tints_corners(self, gray100):
        """Test red rises and blue falls from center to corner."""
        out = apply_color_shading(gray100, ColorShadingProfile(DEFAULT_COLOR_SHADING))
        center, corner = out[50, 50], out[0, 0]
        assert corner[0] > center[0]
        assert corner[2] < center[2]
        np.testing.assert_array_equal(center, [100, 100, 100])


class TestChromaticAberration:
    """Tests for apply_chromatic_aberration."""

    def test_zero_coefficients_identity(self, gradient64):
        out = apply_chromatic_aberration(gradient64, (0.0, 0.0), (0.0, 0.0))
        np.testing.assert_array_equal(out, gradient64)

    def test_green_unchanged(self, gradient64):
        """Test only the red and blue channels are resampled."""
        out = apply_chromatic_aberration(gradient64, (0.2, 0.1), (-0.2, -0.1))
        np.testing.assert_array_equal(out[..., 1], gradient64[..., 1])

    def test_red_and_blue_shift_in_opposite_directions(self):
        """Test a vertical edge right of center moves apart in R and B."""
        img = np.zeros((64, 64, 3), dtype=np.uint8)
        img[:, 48:] = 255
        out = apply_chromatic_aberration(img, (0.5, 0.0), (-0.5, 0.0))
        row = out[32]
        # red reads further out and reaches the white side early; blue reads further in
        assert row[:, 0].astype(int).sum() > row[:, 1].astype(int).sum()
        assert row[:, 2].astype(int).sum() < row[:, 1].astype(int).sum()


class TestVignetting:
    """Tests for apply_vignetting."""

    def test_unit_gain_identity(self, gradient64):
        np.testing.assert_array_equal(apply_vignetting(gradient64, (0, 0, 0, 0, 1)), gradient64)

    def test_default_darkens_corners(self, gray100):
        out = apply_vignetting(gray100, (-0.5, 0.0, 0.0, -0.2, 1.0))
        assert out[50, 50, 0] == 100
        assert out[0, 0, 0] < 40

    @pytest.mark.parametrize("coeffs, expected", [((0, 0, 0, 0, -1.0), 0), ((0, 0, 0, 0, 10.0), 255)])
    def test_saturates(self, gray100, coeffs, expected):
        """Test negative and large gains clamp to 0 / 255."""
        out = apply_vignetting(gray100, coeffs)
        assert np.all(out == expected)

    def test_extra_channel_copied(self, rgba_image):
        out = apply_vignetting(rgba_image, (0, 0, 0, 0, -1.0))
        assert np.all(out[..., :3] == 0)
        assert np.all(out[..., 3] == 77)
