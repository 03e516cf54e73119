"""
sampling.py — pixel-buffer contract, sampling primitives and radial geometry

WHAT THIS MODULE PROVIDES
-------------------------
• check_buffer / check_same_shape
    The structural contract every stage relies on: an 8-bit (H, W, C) array
    with at least three (RGB-compatible) channels, and identical shapes for
    every buffer that takes part in one pipeline run.

• nearest_sample(image, x, y)
    Round-half-away-from-zero to the nearest pixel, clamp to the image.

• bilinear_sample(image, x, y)
    Four-tap interpolation on the integer grid with replicate-edge clamping
    (each tap clamped independently; never wraps, never zero-fills).

• radial_grid(width, height)
    Per-pixel offsets from the geometric center (W/2, H/2) and the radius
    normalized by the center-to-corner distance, so r ∈ [0, 1] in-bounds.

CONVENTIONS
-----------
• Buffers are numpy uint8 arrays, row-major, shape (H, W, C).
  The flat index of sample (y, x, c) is (y * W + x) * C + c.
• Sampling returns float32 RGB (the 3 leading channels); callers clamp and
  truncate to 8 bit when they store.
• Both samplers accept scalars or equal-shape coordinate arrays. Scalars give
  an RGB vector of shape (3,); arrays give shape coords.shape + (3,).
"""

from __future__ import annotations
from typing import NamedTuple, Tuple
import numpy as np


# -----------------------------------------------------------------------------
# Buffer contract
# -----------------------------------------------------------------------------
def check_buffer(image: np.ndarray, name: str = "image") -> Tuple[int, int, int]:
    """
    Validate a pixel buffer and return its (H, W, C).

    Raises
    ------
    ValueError
        If `image` is not a 3-D uint8 array with at least 3 channels and a
        non-empty spatial extent.
    """
    if not isinstance(image, np.ndarray):
        raise ValueError(f"{name} must be a numpy array, got {type(image).__name__}")
    if image.ndim != 3:
        raise ValueError(f"{name} must have shape (H, W, C), got {image.shape}")
    if image.dtype != np.uint8:
        raise ValueError(f"{name} must be uint8, got {image.dtype}")
    h, w, c = image.shape
    if h == 0 or w == 0:
        raise ValueError(f"{name} must not be empty, got {image.shape}")
    if c < 3:
        raise ValueError(f"{name} needs at least 3 channels (RGB), got {c}")
    return h, w, c


def check_same_shape(src: np.ndarray, dst: np.ndarray, context: str = "stage") -> None:
    """Fail fast when two buffers of the same run disagree on (H, W, C)."""
    check_buffer(src, "source buffer")
    check_buffer(dst, "destination buffer")
    if src.shape != dst.shape:
        raise ValueError(
            f"{context}: buffer dimensions differ, source {src.shape} vs destination {dst.shape}"
        )


# -----------------------------------------------------------------------------
# Rounding helpers
# -----------------------------------------------------------------------------
def round_half_away(values: np.ndarray | float) -> np.ndarray:
    """Round to nearest integer, ties away from zero (not numpy's banker's rounding)."""
    v = np.asarray(values)
    return np.where(v >= 0, np.floor(v + 0.5), np.ceil(v - 0.5))


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Clamp to [0, 255] and truncate toward zero (the store rule of every stage)."""
    return np.clip(np.nan_to_num(values, nan=0.0), 0.0, 255.0).astype(np.uint8)


# -----------------------------------------------------------------------------
# Sampling primitives
# -----------------------------------------------------------------------------
def nearest_sample(image: np.ndarray, x, y) -> np.ndarray:
    """
    Nearest-neighbor sample of the 3 leading channels.

    Parameters
    ----------
    image : (H, W, C) uint8
    x, y : float or ndarray
        Continuous pixel coordinates (x = column, y = row).

    Returns
    -------
    rgb : float32 array, shape (3,) for scalar input or coords.shape + (3,)
    """
    h, w, _ = check_buffer(image)
    xs = np.nan_to_num(np.asarray(x, dtype=np.float64))
    ys = np.nan_to_num(np.asarray(y, dtype=np.float64))
    xi = np.clip(round_half_away(np.clip(xs, -1.0, w)), 0, w - 1).astype(np.int64)
    yi = np.clip(round_half_away(np.clip(ys, -1.0, h)), 0, h - 1).astype(np.int64)
    return image[yi, xi, :3].astype(np.float32)


def bilinear_sample(image: np.ndarray, x, y) -> np.ndarray:
    """
    Bilinear sample of the 3 leading channels with replicate-edge clamping.

    Algorithm
    ---------
    1) (x0, y0) = (floor(x), floor(y)) is the top-left cell corner.
    2) Fetch the 4 taps (x0|x0+1, y0|y0+1); each coordinate is clamped to
       [0, W-1] / [0, H-1] independently.
    3) Interpolate along x with fx = x - x0, then along y with fy = y - y0.

    Returns
    -------
    rgb : float32 array, shape (3,) for scalar input or coords.shape + (3,)

    Notes
    -----
    • Coordinates are pre-clipped to [-1, W] x [-1, H]. Beyond that range all
      four taps collapse onto the same edge pixel, so the clip never changes
      the result; it only keeps the integer cast well-defined for extreme
      polynomial coefficients.
    """
    h, w, _ = check_buffer(image)
    xs = np.clip(np.nan_to_num(np.asarray(x, dtype=np.float32)), -1.0, float(w))
    ys = np.clip(np.nan_to_num(np.asarray(y, dtype=np.float32)), -1.0, float(h))

    x0 = np.floor(xs)
    y0 = np.floor(ys)
    fx = (xs - x0)[..., None]
    fy = (ys - y0)[..., None]

    x0i = x0.astype(np.int64)
    y0i = y0.astype(np.int64)
    xa = np.clip(x0i, 0, w - 1)
    xb = np.clip(x0i + 1, 0, w - 1)
    ya = np.clip(y0i, 0, h - 1)
    yb = np.clip(y0i + 1, 0, h - 1)

    rgb = image[..., :3].astype(np.float32)
    p00 = rgb[ya, xa]
    p10 = rgb[ya, xb]
    p01 = rgb[yb, xa]
    p11 = rgb[yb, xb]

    top = p00 * (1.0 - fx) + p10 * fx
    bottom = p01 * (1.0 - fx) + p11 * fx
    return (top * (1.0 - fy) + bottom * fy).astype(np.float32)


# -----------------------------------------------------------------------------
# Radial geometry
# -----------------------------------------------------------------------------
class RadialGrid(NamedTuple):
    """Per-pixel polar description of an image around its geometric center."""
    dx: np.ndarray          # x - cx, float32 (H, W)
    dy: np.ndarray          # y - cy, float32 (H, W)
    r: np.ndarray           # normalized radius, float32 (H, W)
    cx: float
    cy: float
    max_radius: float       # center-to-corner distance in pixels


def image_center(width: int, height: int) -> Tuple[float, float]:
    """Geometric center (W/2, H/2)."""
    return width / 2.0, height / 2.0


def radial_grid(width: int, height: int) -> RadialGrid:
    """
    Offsets and normalized radius for every pixel of a (height, width) grid.

    The radius is normalized by the distance from the center to the corner
    (0, 0); for a 1x1 image that distance is still > 0 (center at 0.5, 0.5).
    """
    cx, cy = image_center(width, height)
    max_radius = float(np.hypot(cx, cy))
    yy, xx = np.indices((int(height), int(width)), dtype=np.float32)
    dx = xx - np.float32(cx)
    dy = yy - np.float32(cy)
    r = np.sqrt(dx * dx + dy * dy) / np.float32(max_radius)
    return RadialGrid(dx=dx, dy=dy, r=r.astype(np.float32), cx=cx, cy=cy, max_radius=max_radius)
