"""
sensor_model.py — sensor-side degradations: white-balance cast, black level, dead pixels

WHAT THIS MODULE DOES
---------------------
Models the artifacts an 8-bit RGB sensor output picks up after the lens:
  1) White-balance error: the illuminant's color temperature scales R, G, B
     by a per-channel gain (table lookup, see calibration_model).
  2) Black-level offset: a constant dark signal is added to every sample,
     saturating at 255. In parallel, a small set of optical-black (OB)
     reference pixels is synthesized: the ideal offset plus Gaussian read
     noise (σ = 5 DN), rounded and clamped.
  3) Dead-pixel injection: each channel sample independently dies (reads 0)
     with a configured probability; the flat indices of the dead samples are
     returned so the correction side can repair them.

LEARNING NOTES
--------------
• OB pixels are shielded from light, so they see only the dark offset plus
  read noise. Their average is the classic black-level estimate.
• Saturating (not wrapping) arithmetic mirrors an ADC: values past full scale
  clip at the top code.
• Dead pixels here are drawn fresh every run from a fixed seed. Real defects
  are fixed on the die and would be calibrated once; the simulator trades that
  realism for a map that always matches the image being corrected.

REPRODUCIBILITY
---------------
All randomness comes from numpy Generators passed in by the caller
(`np.random.default_rng(seed)`), so identical seeds give identical outputs.
One run uses seed + OB_SEED_OFFSET for the optical-black noise and
seed + DEAD_PIXEL_SEED_OFFSET for the dead-pixel draws.

REFERENCES (short list)
-----------------------
• Janesick, J. R. (2007). Photon Transfer: DN → λ. SPIE Press.
• Holst, G. C. (2011). CMOS/CCD Sensors and Camera Systems (2e). SPIE Press.
"""

from __future__ import annotations
from typing import Tuple
import numpy as np

from ..calibration.calibration_model import (
    OB_NOISE_SIGMA,
    OB_PIXEL_COUNT,
    REFERENCE_TEMPERATURE_TABLE,
    ColorTemperatureTable,
    color_temperature_to_gain,
)
from ..utils.sampling import check_buffer, round_half_away, to_uint8

# Seed offsets: optical-black noise uses seed + 0, dead-pixel draws seed + 1
OB_SEED_OFFSET = 0
DEAD_PIXEL_SEED_OFFSET = 1


# -----------------------------------------------------------------------------
# White-balance error
# -----------------------------------------------------------------------------
def apply_white_balance_error(
    image: np.ndarray,
    color_temperature: float,
    table: ColorTemperatureTable = REFERENCE_TEMPERATURE_TABLE,
) -> np.ndarray:
    """
    Multiply R, G, B by the gain of `color_temperature`; clamp to 255; floor.

    Extra channels (e.g. alpha) are copied unchanged.
    """
    check_buffer(image)
    gain = color_temperature_to_gain(color_temperature, table).astype(np.float32)
    out = image.copy()
    out[..., :3] = to_uint8(np.floor(image[..., :3].astype(np.float32) * gain))
    return out


# -----------------------------------------------------------------------------
# Black level + optical black
# -----------------------------------------------------------------------------
def apply_black_level_offset(image: np.ndarray, offset: int) -> np.ndarray:
    """Add `offset` to every channel sample, saturating at 255 (never wrapping)."""
    check_buffer(image)
    return np.minimum(image.astype(np.int16) + int(offset), 255).astype(np.uint8)


def synthesize_optical_black(
    offset: int,
    rng: np.random.Generator,
    count: int = OB_PIXEL_COUNT,
    sigma: float = OB_NOISE_SIGMA,
) -> np.ndarray:
    """
    Dark-reference samples: (offset, offset, offset) + N(0, σ²) per channel.

    Returns
    -------
    ob : (count, 3) uint8, rounded half away from zero and clamped to [0, 255]
    """
    ideal = np.full((int(count), 3), float(offset), dtype=np.float64)
    noisy = ideal + rng.normal(0.0, float(sigma), size=ideal.shape)
    return np.clip(round_half_away(noisy), 0, 255).astype(np.uint8)


# -----------------------------------------------------------------------------
# Dead pixels
# -----------------------------------------------------------------------------
def inject_dead_pixels(
    image: np.ndarray,
    fraction: float,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Zero each channel sample independently with probability `fraction`.

    One uniform draw per sample, in flat (row-major) order; a sample dies when
    its draw is < fraction.

    Returns
    -------
    out : (H, W, C) uint8 copy with dead samples set to 0
    dead : sorted int64 flat indices of the dead samples
    """
    check_buffer(image)
    draws = rng.random(image.size)
    dead_mask = draws < float(fraction)
    out = image.copy().reshape(-1)
    out[dead_mask] = 0
    return out.reshape(image.shape), np.flatnonzero(dead_mask).astype(np.int64)
