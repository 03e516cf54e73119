"""Shared pytest fixtures for the ISP pipeline tests."""

import numpy as np
import pytest

from isp_pipeline.config import PipelineConfig
from isp_pipeline.scenes.scene_generator import generate_gradient_scene


@pytest.fixture
def gray100():
    """Uniform 100x100 RGB image at level 100."""
    return np.full((100, 100, 3), 100, dtype=np.uint8)


@pytest.fixture
def gradient64():
    """Smooth 64x64 RGB gradient (R along x, G along y)."""
    return generate_gradient_scene(64, 64)


@pytest.fixture
def rgba_image():
    """Small RGBA image with a constant alpha plane of 77."""
    rng = np.random.default_rng(7)
    img = rng.integers(0, 256, size=(24, 32, 4), dtype=np.uint8)
    img[..., 3] = 77
    return img


@pytest.fixture
def default_config():
    """Default parameter snapshot."""
    return PipelineConfig()
