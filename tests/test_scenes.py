"""Tests for the synthetic reference scenes."""

import numpy as np
import pytest

from isp_pipeline.scenes.scene_generator import (
    SCENE_KINDS,
    generate_checker,
    generate_color_bars,
    generate_gradient_scene,
    generate_scene,
    generate_siemens_star,
    generate_uniform_scene,
)
from isp_pipeline.utils.sampling import check_buffer


class TestGenerateScene:
    """Tests for the scene dispatcher."""

    @pytest.mark.parametrize("kind", SCENE_KINDS)
    def test_valid_reference_buffer(self, kind):
        """Test every scene is a valid (size, size, 3) uint8 buffer."""
        img = generate_scene(kind, 48)
        assert img.shape == (48, 48, 3)
        assert check_buffer(img) == (48, 48, 3)

    @pytest.mark.parametrize("alias, kind", [("siemens", "siemens_star"), ("bars", "color_bars"), ("gray", "uniform")])
    def test_aliases(self, alias, kind):
        np.testing.assert_array_equal(generate_scene(alias, 32), generate_scene(kind, 32))

    def test_kwargs_forwarded(self):
        img = generate_scene("uniform", 8, value=42)
        assert np.all(img == 42)

    def test_unknown_scene(self):
        with pytest.raises(ValueError, match="unknown scene"):
            generate_scene("barcode", 32)

    def test_non_positive_size(self):
        with pytest.raises(ValueError):
            generate_scene("gradient", 0)


class TestGenerators:
    """Tests for the individual generators."""

    def test_gradient_corners(self):
        img = generate_gradient_scene(16, 8)
        assert img.shape == (8, 16, 3)
        np.testing.assert_array_equal(img[0, 0], [0, 0, 128])
        np.testing.assert_array_equal(img[-1, -1], [255, 255, 128])

    def test_checker_tiles(self):
        img = generate_checker(8, square_px=4)
        assert img[0, 0, 0] == 0
        assert img[0, 4, 0] == 255
        assert img[4, 4, 0] == 0
        inv = generate_checker(8, square_px=4, invert=True)
        np.testing.assert_array_equal(inv, 255 - img)

    def test_siemens_star_is_binary(self):
        img = generate_siemens_star(64, spokes=8)
        assert set(np.unique(img)) <= {0, 255}
        assert img[0, 0, 0] == 255  # outside the circle

    def test_color_bars(self):
        img = generate_color_bars(80, 10)
        np.testing.assert_array_equal(img[0, 0], [191, 191, 191])    # white at 75 %
        np.testing.assert_array_equal(img[0, 50], [191, 0, 0])       # red
        np.testing.assert_array_equal(img[0, 79], [0, 0, 0])         # black

    def test_uniform_range(self):
        with pytest.raises(ValueError):
            generate_uniform_scene(4, 4, value=300)
