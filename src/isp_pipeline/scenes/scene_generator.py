"""
scene_generator.py — synthetic RGB reference scenes (uint8, shape (H, W, 3))

WHAT THIS MODULE PROVIDES
-------------------------
Clean reference images to feed the degradation chain, each chosen to make one
artifact easy to see:
  • Color gradient   — R ramps along x, G along y, B constant. Shows the
                       white-balance cast and color shading as tone shifts.
  • Checkerboard     — straight high-contrast edges. Barrel distortion bends
                       them; lateral color fringes them.
  • Siemens star     — radial wedges; chromatic aberration separates R/B at
                       the rim, vignetting darkens the corners.
  • Color bars       — eight saturated bars (white, yellow, cyan, green,
                       magenta, red, blue, black); easy to read per-channel
                       gains off.
  • Uniform gray     — flat field. Black level, dead pixels and the radial
                       gain profiles show up directly.

RETURNS
-------
All generators return a 3-D NumPy array, dtype uint8, channels = RGB, so the
result is a valid pipeline reference buffer.

REFERENCES (short list)
-----------------------
• ISO 12233:2017 — Electronic still picture imaging (resolution targets).
• SMPTE EG 1-1990 — Alignment color bar test signal.
"""

from __future__ import annotations
import numpy as np

from ..utils.sampling import to_uint8

SCENE_KINDS = ("gradient", "checker", "siemens_star", "color_bars", "uniform")


# -----------------------------------------------------------------------------
# Utilities
# -----------------------------------------------------------------------------
def _to_rgb8(img01: np.ndarray) -> np.ndarray:
    """Map float [0, 1] to uint8 [0, 255]; a 2-D input is replicated to gray RGB."""
    img = np.asarray(img01, dtype=np.float32)
    if img.ndim == 2:
        img = np.repeat(img[..., None], 3, axis=2)
    return to_uint8(np.clip(img, 0.0, 1.0) * 255.0 + 0.5)


def _check_size(width: int, height: int) -> None:
    if int(width) <= 0 or int(height) <= 0:
        raise ValueError(f"scene size must be positive, got {width}x{height}")


# -----------------------------------------------------------------------------
# Scene generators
# -----------------------------------------------------------------------------
def generate_gradient_scene(width: int = 512, height: int = 512) -> np.ndarray:
    """
    Two-axis color gradient.

    Returns
    -------
    grad_img : (height, width, 3) uint8
        R = x / (W-1), G = y / (H-1), B = 0.5 (all scaled to 255).
    """
    _check_size(width, height)
    w, h = int(width), int(height)
    red = np.tile(np.linspace(0, 1, w, dtype=np.float32), (h, 1))
    green = np.tile(np.linspace(0, 1, h, dtype=np.float32)[:, None], (1, w))
    blue = np.full((h, w), 0.5, dtype=np.float32)
    return _to_rgb8(np.stack([red, green, blue], axis=2))


def generate_checker(
    size: int = 512,
    square_px: int = 16,
    invert: bool = False,
) -> np.ndarray:
    """
    Checkerboard pattern (black/white tiles).

    Parameters
    ----------
    size : int
        Square canvas size (pixels).
    square_px : int
        Tile size (pixels).
    invert : bool
        If True, swap black/white tiles.
    """
    _check_size(size, size)
    h = w = int(size)
    y, x = np.indices((h, w))
    tiles = ((x // max(int(square_px), 1)) + (y // max(int(square_px), 1))) % 2
    img = 1 - tiles if invert else tiles
    return _to_rgb8(img.astype(np.float32))


def generate_siemens_star(size: int = 512, spokes: int = 36) -> np.ndarray:
    """
    Siemens star: alternating wedges radiating from the center.

    `spokes` is the number of black/white wedge pairs. Pixels outside the
    inscribed circle are white.
    """
    _check_size(size, size)
    h = w = int(size)
    y, x = np.indices((h, w)).astype(np.float32)
    cx, cy = w / 2.0, h / 2.0
    theta = np.arctan2(y - cy, x - cx)
    star = (np.sin(float(spokes) * theta) > 0).astype(np.float32)
    star[np.hypot(x - cx, y - cy) > min(cx, cy)] = 1.0
    return _to_rgb8(star)


# Bar colors, left to right
_BAR_COLORS = np.array(
    [
        [1, 1, 1],  # white
        [1, 1, 0],  # yellow
        [0, 1, 1],  # cyan
        [0, 1, 0],  # green
        [1, 0, 1],  # magenta
        [1, 0, 0],  # red
        [0, 0, 1],  # blue
        [0, 0, 0],  # black
    ],
    dtype=np.float32,
)


def generate_color_bars(width: int = 512, height: int = 512, level: float = 0.75) -> np.ndarray:
    """
    Eight vertical color bars at `level` of full scale (75 % by default, so a
    white-balance gain above 1 stays visible instead of clipping).
    """
    _check_size(width, height)
    w, h = int(width), int(height)
    bar_index = np.minimum(np.arange(w) * len(_BAR_COLORS) // w, len(_BAR_COLORS) - 1)
    row = _BAR_COLORS[bar_index] * float(level)
    return _to_rgb8(np.tile(row[None, :, :], (h, 1, 1)))


def generate_uniform_scene(width: int = 512, height: int = 512, value: int = 128) -> np.ndarray:
    """Flat field of a single 8-bit gray `value`."""
    _check_size(width, height)
    if not 0 <= int(value) <= 255:
        raise ValueError(f"value must be within [0, 255], got {value}")
    return np.full((int(height), int(width), 3), int(value), dtype=np.uint8)


# -----------------------------------------------------------------------------
# Dispatcher (public API)
# -----------------------------------------------------------------------------
def generate_scene(kind: str, size: int, **kwargs) -> np.ndarray:
    """
    Dispatch scene generation by name.

    Parameters
    ----------
    kind : str
        One of SCENE_KINDS. Also accepts aliases: 'siemens', 'checkerboard',
        'bars', 'gray', 'flat'.
    size : int
        Square canvas size (pixels).

    Returns
    -------
    img : (size, size, 3) uint8

    Raises
    ------
    ValueError
        For an unknown scene name or a non-positive size.
    """
    k = (kind or "").lower().strip()

    if k == "gradient":
        return generate_gradient_scene(width=int(size), height=int(size))

    if k in ("checker", "checkerboard"):
        return generate_checker(
            size=int(size),
            square_px=int(kwargs.get("square_px", max(int(size) // 16, 1))),
            invert=bool(kwargs.get("invert", False)),
        )

    if k in ("siemens_star", "siemens"):
        return generate_siemens_star(size=int(size), spokes=int(kwargs.get("spokes", 36)))

    if k in ("color_bars", "bars"):
        return generate_color_bars(
            width=int(size),
            height=int(size),
            level=float(kwargs.get("level", 0.75)),
        )

    if k in ("uniform", "gray", "flat"):
        return generate_uniform_scene(
            width=int(size),
            height=int(size),
            value=int(kwargs.get("value", 128)),
        )

    raise ValueError(f"unknown scene '{kind}'; expected one of {SCENE_KINDS}")
