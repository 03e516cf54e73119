"""
correction_model.py — ISP correction stages that undo the simulated artifacts

WHAT THIS MODULE DOES
---------------------
Each correction takes the buffer produced by the previous stage plus the
calibration data of the matching degradation, and returns a fresh buffer of
the same shape:

  • Dead-pixel correction   — every sample listed in the dead-pixel map is
                              replaced by the truncated mean of its in-bounds
                              same-channel 4-neighbors (±1 column, ±1 row).
  • Black-level correction  — the dark offset estimated from the optical-black
                              samples is subtracted, clamping at 0.
  • Vignetting, color shading, chromatic aberration, lens, white balance —
                              the inverse of the corresponding degradation
                              model, evaluated with the same coefficients.
  • Auto white balance      — gray-world: scale R and B so their means match G.

LEARNING NOTES
--------------
• Dead pixels and black level are calibrated from data the sensor exposes
  (a defect list, the OB pixels). The optical corrections depend only on the
  lens design, so in a real camera their profiles are measured once at the
  factory and simply inverted here.
• Neighbors are read from the *uncorrected* input. A neighbor that is itself
  dead therefore contributes its zero to the mean; clusters of dead samples
  are not repaired well. This is a known limitation of the 4-neighbor model.
• The geometric inverses resample with the same bilinear primitive as the
  degradations, so a distort/undistort round trip is close to, but never
  exactly, the identity.
"""

from __future__ import annotations
from typing import Optional, Sequence
import numpy as np
from scipy import ndimage

from ..calibration.calibration_model import (
    REFERENCE_TEMPERATURE_TABLE,
    ColorShadingProfile,
    ColorTemperatureTable,
    chromatic_displacement,
    color_temperature_to_gain,
    vignetting_gain,
)
from ..optics.optics_model import radial_angle
from ..utils.sampling import bilinear_sample, check_buffer, radial_grid, to_uint8

# Divisors at or below this magnitude are treated as "no information"
_EPS = 1e-6

# Newton iterations used to invert the barrel polynomial
LENS_INVERSE_ITERATIONS = 8

_CROSS_KERNEL = np.array(
    [[0, 1, 0],
     [1, 0, 1],
     [0, 1, 0]],
    dtype=np.int32,
)[:, :, None]


def _with_rgb(image: np.ndarray, rgb: np.ndarray) -> np.ndarray:
    out = image.copy()
    out[..., :3] = to_uint8(rgb)
    return out


def _safe_divide(values: np.ndarray, divisor: np.ndarray) -> np.ndarray:
    """values / divisor where divisor > eps; pass values through elsewhere."""
    ok = divisor > _EPS
    return np.where(ok, values / np.where(ok, divisor, 1.0), values)


# -----------------------------------------------------------------------------
# Dead-pixel correction
# -----------------------------------------------------------------------------
def correct_dead_pixels(image: np.ndarray, dead_indices: np.ndarray) -> np.ndarray:
    """
    Replace each listed sample with the mean of its 4-connected neighbors.

    Parameters
    ----------
    image : (H, W, C) uint8
    dead_indices : flat indices into `image` (row-major, (y·W + x)·C + c)

    Returns
    -------
    corrected : (H, W, C) uint8

    Notes
    -----
    • Only in-bounds neighbors count (no wraparound); the mean uses integer
      division, so it truncates.
    • Neighbor sums and counts come from a cross-shaped correlation with zero
      padding: the padded zeros add nothing to the sum and the count image
      tells how many real neighbors each pixel has.
    • A sample with no in-bounds neighbor (1x1 image) keeps its value.
    """
    h, w, c = check_buffer(image)
    dead = np.asarray(dead_indices, dtype=np.int64).reshape(-1)
    out = image.copy()
    if dead.size == 0:
        return out
    if dead.min() < 0 or dead.max() >= image.size:
        raise ValueError(
            f"dead-pixel index out of range for buffer {image.shape}: "
            f"[{dead.min()}, {dead.max()}] not within [0, {image.size - 1}]"
        )

    sums = ndimage.correlate(image.astype(np.int32), _CROSS_KERNEL, mode="constant", cval=0)
    counts = ndimage.correlate(np.ones((h, w, 1), dtype=np.int32), _CROSS_KERNEL, mode="constant", cval=0)
    counts = np.broadcast_to(counts, image.shape)

    dead_sums = sums.reshape(-1)[dead]
    dead_counts = counts.reshape(-1)[dead]
    has_neighbors = dead_counts > 0

    flat = out.reshape(-1)
    flat[dead[has_neighbors]] = (dead_sums[has_neighbors] // dead_counts[has_neighbors]).astype(np.uint8)
    return out


# -----------------------------------------------------------------------------
# Black-level correction
# -----------------------------------------------------------------------------
def estimate_black_level(optical_black: np.ndarray) -> int:
    """
    Scalar black level: mean over the OB samples of (R + G + B) / 3,
    truncated to an 8-bit integer.
    """
    ob = np.asarray(optical_black, dtype=np.float64)
    if ob.ndim != 2 or ob.shape[0] == 0 or ob.shape[1] < 3:
        raise ValueError(f"optical-black samples must have shape (N, 3), got {ob.shape}")
    per_pixel = ob[:, :3].sum(axis=1) / 3.0
    return int(np.clip(np.trunc(per_pixel.mean()), 0, 255))


def correct_black_level(image: np.ndarray, optical_black: Optional[np.ndarray]) -> np.ndarray:
    """Subtract the OB estimate from every channel sample, clamping at 0."""
    check_buffer(image)
    if optical_black is None:
        raise ValueError("black-level correction needs optical-black samples; none were recorded this run")
    level = estimate_black_level(optical_black)
    return np.maximum(image.astype(np.int16) - level, 0).astype(np.uint8)


# -----------------------------------------------------------------------------
# Optical inverses
# -----------------------------------------------------------------------------
def correct_vignetting(image: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """Divide R, G, B by V(r); where V(r) <= 0 the sample passes through."""
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    v = vignetting_gain(g.r, coeffs)[..., None]
    rgb = _safe_divide(image[..., :3].astype(np.float32), v)
    return _with_rgb(image, rgb)


def correct_color_shading(image: np.ndarray, profile: ColorShadingProfile) -> np.ndarray:
    """Divide R, G, B by the radial shading gain."""
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    rgb = _safe_divide(image[..., :3].astype(np.float32), profile.gain(g.r))
    return _with_rgb(image, rgb)


def correct_chromatic_aberration(
    image: np.ndarray,
    coeffs_r: Sequence[float],
    coeffs_b: Sequence[float],
) -> np.ndarray:
    """
    First-order inverse of the lateral color model.

    The degradation read red at center + d·(1 + C_R(r)); here red is read back
    at center + d / (1 + C_R(r)) (blue likewise). Green is copied.
    """
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    cx, cy = np.float32(g.cx), np.float32(g.cy)

    mag_r = 1.0 + chromatic_displacement(g.r, coeffs_r)
    mag_b = 1.0 + chromatic_displacement(g.r, coeffs_b)
    inv_r = _safe_divide(np.ones_like(mag_r), mag_r)
    inv_b = _safe_divide(np.ones_like(mag_b), mag_b)

    red = bilinear_sample(image, cx + g.dx * inv_r, cy + g.dy * inv_r)[..., 0]
    blue = bilinear_sample(image, cx + g.dx * inv_b, cy + g.dy * inv_b)[..., 2]

    out = image.copy()
    out[..., 0] = to_uint8(red)
    out[..., 2] = to_uint8(blue)
    return out


def invert_barrel_radius(target: np.ndarray, coeffs: Sequence[float],
                         iterations: int = LENS_INVERSE_ITERATIONS) -> np.ndarray:
    """
    Solve r·(a + b·r² + c·r⁴) = target for r ≥ 0 by Newton iteration.

    Starts from target / a and stops updating a pixel where the derivative
    a + 3b·r² + 5c·r⁴ is too flat to divide by.
    """
    a, b, c = (np.float32(v) for v in coeffs)
    t = np.asarray(target, dtype=np.float32)
    r = t / a if abs(float(a)) > _EPS else t.copy()
    for _ in range(int(iterations)):
        r2 = r * r
        f = r * (a + b * r2 + c * r2 * r2) - t
        df = a + 3.0 * b * r2 + 5.0 * c * r2 * r2
        step = np.where(np.abs(df) > _EPS, f / np.where(np.abs(df) > _EPS, df, 1.0), 0.0)
        r = r - step
    return np.maximum(np.nan_to_num(r, nan=0.0), 0.0).astype(np.float32)


def correct_lens_distortion(image: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """
    Undo barrel distortion.

    The degraded pixel at radius r shows the scene at D(r). The scene point at
    radius s is therefore found in the degraded image at D⁻¹(s); sample there.
    """
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    theta = radial_angle(g.dx, g.dy)

    src_radius = invert_barrel_radius(g.r, coeffs) * np.float32(g.max_radius)
    xs = np.float32(g.cx) + src_radius * np.cos(theta)
    ys = np.float32(g.cy) + src_radius * np.sin(theta)
    return _with_rgb(image, bilinear_sample(image, xs, ys))


# -----------------------------------------------------------------------------
# White balance
# -----------------------------------------------------------------------------
def correct_white_balance(
    image: np.ndarray,
    color_temperature: float,
    table: ColorTemperatureTable = REFERENCE_TEMPERATURE_TABLE,
) -> np.ndarray:
    """Divide R, G, B by the gain of the known illuminant temperature."""
    check_buffer(image)
    gain = color_temperature_to_gain(color_temperature, table).astype(np.float32)
    rgb = _safe_divide(image[..., :3].astype(np.float32), gain)
    return _with_rgb(image, rgb)


def correct_white_balance_auto(image: np.ndarray) -> np.ndarray:
    """
    Gray-world auto white balance.

    Assumes the scene averages to neutral gray: R and B are scaled so their
    means equal the G mean. A channel with zero mean is left as is.
    """
    check_buffer(image)
    rgb = image[..., :3].astype(np.float32)
    means = rgb.reshape(-1, 3).mean(axis=0)
    gain = np.ones(3, dtype=np.float32)
    for ch in (0, 2):
        if means[ch] > _EPS:
            gain[ch] = means[1] / means[ch]
    return _with_rgb(image, rgb * gain)
