"""
optics_model.py — radial lens artifacts: distortion, shading, chromatic aberration, vignetting

WHAT THIS MODULE DOES
---------------------
Implements the lens-side degradation stages of the simulator. Each one is a
function of the normalized radial distance r from the geometric center
(r = 0 at (W/2, H/2), r = 1 at the corner), so every model is rotationally
symmetric:

  • Barrel distortion   — destination pixel at radius r samples the source at
                          r' = r·(a + b·r² + c·r⁴) along the same angle.
  • Color shading       — per-channel radial gain from a sampled profile.
  • Chromatic aberration — red and blue are magnified by (1 + C(r)) with
                          C(r) = a·r² + b·r³; green is the reference.
  • Vignetting          — all channels scaled by V(r) = a·r⁴ + … + e.

CONVENTIONS
-----------
• Inputs/outputs are (H, W, C) uint8 buffers; outputs are freshly allocated
  and the input is never modified.
• Only R, G, B are transformed; any extra channels are copied unchanged.
• Stores clamp to [0, 255] and truncate toward zero.
• Geometric stages resample with bilinear interpolation and replicate-edge
  clamping (see utils.sampling).

WHY POLYNOMIALS?
----------------
Low-order even/odd polynomials in r are the classic Brown–Conrady style
description of radial lens behavior. They are cheap to evaluate, easy to
calibrate (a handful of coefficients per lens design) and easy to invert
numerically, which is what the correction stages rely on.

REFERENCES (short list)
-----------------------
• Brown, D. C. (1966). Decentering distortion of lenses. Photogrammetric Eng.
• Kang, S. B., & Weiss, R. (2000). Can we calibrate a camera using an image
  of a flat, textureless Lambertian surface? (vignetting models)
• Smith, W. J. (2007). Modern Optical Engineering (4e). (lateral color)
"""

from __future__ import annotations
from typing import Sequence
import numpy as np

from ..calibration.calibration_model import (
    ColorShadingProfile,
    barrel_factor,
    chromatic_displacement,
    vignetting_gain,
)
from ..utils.sampling import bilinear_sample, check_buffer, radial_grid, to_uint8


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _with_rgb(image: np.ndarray, rgb: np.ndarray) -> np.ndarray:
    """Copy of `image` whose 3 leading channels are replaced by clamped, truncated `rgb`."""
    out = image.copy()
    out[..., :3] = to_uint8(rgb)
    return out


def radial_angle(dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    """atan2(dy, dx) with the exact-center pixel pinned to angle 0."""
    theta = np.arctan2(dy, dx).astype(np.float32)
    theta[(dx == 0) & (dy == 0)] = 0.0
    return theta


# -----------------------------------------------------------------------------
# Barrel lens distortion
# -----------------------------------------------------------------------------
def apply_lens_distortion(image: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """
    Barrel distortion D(r) = r·(a + b·r² + c·r⁴).

    For each destination pixel: compute (r, θ), distort the radius, rebuild the
    source coordinate at distance D(r)·R_corner along θ from the center and
    bilinear-sample the input there.

    Parameters
    ----------
    image : (H, W, C) uint8
    coeffs : (a, b, c)

    Returns
    -------
    distorted : (H, W, C) uint8
    """
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    theta = radial_angle(g.dx, g.dy)

    src_radius = g.r * barrel_factor(g.r, coeffs) * np.float32(g.max_radius)
    xs = np.float32(g.cx) + src_radius * np.cos(theta)
    ys = np.float32(g.cy) + src_radius * np.sin(theta)

    return _with_rgb(image, bilinear_sample(image, xs, ys))


# -----------------------------------------------------------------------------
# Color shading
# -----------------------------------------------------------------------------
def apply_color_shading(image: np.ndarray, profile: ColorShadingProfile) -> np.ndarray:
    """Multiply RGB by the radial shading gain; clamp at 255 and truncate."""
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    gain = profile.gain(g.r)                       # (H, W, 3) float32
    rgb = image[..., :3].astype(np.float32) * gain
    return _with_rgb(image, rgb)


# -----------------------------------------------------------------------------
# Chromatic aberration (lateral color)
# -----------------------------------------------------------------------------
def apply_chromatic_aberration(
    image: np.ndarray,
    coeffs_r: Sequence[float],
    coeffs_b: Sequence[float],
) -> np.ndarray:
    """
    Differential radial magnification of red and blue relative to green.

    For each pixel the red channel is resampled from the *input* at
        center + (dx, dy)·(1 + C_R(r))
    and the blue channel at
        center + (dx, dy)·(1 + C_B(r)),
    both with bilinear interpolation. Green is copied unchanged.
    """
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    cx, cy = np.float32(g.cx), np.float32(g.cy)

    scale_r = 1.0 + chromatic_displacement(g.r, coeffs_r)
    scale_b = 1.0 + chromatic_displacement(g.r, coeffs_b)

    red = bilinear_sample(image, cx + g.dx * scale_r, cy + g.dy * scale_r)[..., 0]
    blue = bilinear_sample(image, cx + g.dx * scale_b, cy + g.dy * scale_b)[..., 2]

    out = image.copy()
    out[..., 0] = to_uint8(red)
    out[..., 2] = to_uint8(blue)
    return out


# -----------------------------------------------------------------------------
# Vignetting
# -----------------------------------------------------------------------------
def apply_vignetting(image: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """
    Radial fall-off V(r) = a·r⁴ + b·r³ + c·r² + d·r + e applied to R, G, B.

    V may exceed 1 or go negative for unusual coefficients; the product is
    clamped to [0, 255] either way.
    """
    h, w, _ = check_buffer(image)
    g = radial_grid(w, h)
    v = vignetting_gain(g.r, coeffs)[..., None]
    rgb = image[..., :3].astype(np.float32) * v
    return _with_rgb(image, rgb)
