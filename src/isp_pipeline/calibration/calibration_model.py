"""
calibration_model.py — calibration tables, radial polynomials and per-run artifacts

WHAT THIS MODULE DOES
---------------------
Holds the reference data and small numeric models the stages share:
  • ColorTemperatureTable  — (Kelvin → RGB gain) samples on a uniform grid,
    interpolated piecewise-linearly; clamps outside the table.
  • ColorShadingProfile    — radial RGB gains sampled at equal steps from the
    image center (r = 0) to the corner (r = 1).
  • Radial polynomials     — barrel distortion D(r) = r·(a + b·r² + c·r⁴),
    chromatic displacement C(r) = a·r² + b·r³ and vignetting
    V(r) = a·r⁴ + b·r³ + c·r² + d·r + e.
  • RunArtifacts           — calibration data produced by one degradation run
    (dead-pixel map, optical-black samples) and consumed by the correction run.

LEARNING NOTES
--------------
• The temperature gains are approximate RGB multipliers that take a
  5500 K-balanced linear image to the cast seen under another illuminant:
  warm light boosts red and starves blue, cool light does the opposite.
• Color shading (lens shading) is assumed rotationally symmetric, so one
  center→corner line of gains describes the whole field.
• Optical-black (OB) pixels are shielded from light; their mean is the
  sensor's dark offset. Real sensors have a few rows of them; ten samples
  are enough for this simulator.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple
import numpy as np

RGB = Tuple[float, float, float]

# Optical-black model
OB_PIXEL_COUNT = 10
OB_NOISE_SIGMA = 5.0


# -----------------------------------------------------------------------------
# Color temperature → white-balance gain
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ColorTemperatureTable:
    """
    Uniformly sampled (Kelvin, RGB gain) table.

    min_kelvin : temperature of gains[0]
    step_kelvin : spacing between consecutive samples (> 0)
    gains : ordered RGB gain triples, one per sample
    """
    min_kelvin: float
    step_kelvin: float
    gains: Tuple[RGB, ...]

    def __post_init__(self):
        if not self.gains:
            raise ValueError("ColorTemperatureTable needs at least one sample")
        if not self.step_kelvin > 0:
            raise ValueError(f"step_kelvin must be > 0, got {self.step_kelvin}")
        for g in self.gains:
            if len(g) != 3:
                raise ValueError(f"gain entries must be RGB triples, got {g!r}")

    @classmethod
    def from_samples(cls, samples: Sequence[Tuple[float, RGB]]) -> "ColorTemperatureTable":
        """Build from explicit (kelvin, gain) pairs; the grid must be strictly increasing and uniform."""
        if not samples:
            raise ValueError("ColorTemperatureTable needs at least one sample")
        kelvins = np.array([float(k) for k, _ in samples])
        gains = tuple(tuple(float(v) for v in g) for _, g in samples)
        if len(kelvins) == 1:
            return cls(min_kelvin=kelvins[0], step_kelvin=1.0, gains=gains)
        steps = np.diff(kelvins)
        if np.any(steps <= 0):
            raise ValueError("ColorTemperatureTable samples must be strictly increasing in Kelvin")
        if not np.allclose(steps, steps[0]):
            raise ValueError("ColorTemperatureTable samples must use a uniform Kelvin step")
        return cls(min_kelvin=float(kelvins[0]), step_kelvin=float(steps[0]), gains=gains)

    @property
    def max_kelvin(self) -> float:
        return self.min_kelvin + self.step_kelvin * (len(self.gains) - 1)

    def clamp(self, temp_k: float) -> float:
        """Clamp a temperature into the supported range."""
        return float(min(max(float(temp_k), self.min_kelvin), self.max_kelvin))

    def gain(self, temp_k: float) -> np.ndarray:
        """
        Piecewise-linear gain lookup.

        At or below the first sample → gains[0] exactly; at or above the last →
        gains[-1] exactly; otherwise interpolate between the two samples found
        by uniform-step division.
        """
        t = float(temp_k)
        if t <= self.min_kelvin:
            return np.array(self.gains[0], dtype=np.float64)
        if t >= self.max_kelvin:
            return np.array(self.gains[-1], dtype=np.float64)
        pos = (t - self.min_kelvin) / self.step_kelvin
        i0 = min(int(pos), len(self.gains) - 2)
        frac = pos - i0
        g0 = np.array(self.gains[i0], dtype=np.float64)
        g1 = np.array(self.gains[i0 + 1], dtype=np.float64)
        return g0 * (1.0 - frac) + g1 * frac


# Approximate RGB factors applied to a 5500 K-balanced linear RGB image.
REFERENCE_TEMPERATURE_TABLE = ColorTemperatureTable(
    min_kelvin=2500.0,
    step_kelvin=500.0,
    gains=(
        (1.67, 1.0, 0.58),  # 2500K  very warm
        (1.46, 1.0, 0.71),  # 3000K  warm incandescent
        (1.31, 1.0, 0.82),  # 3500K
        (1.20, 1.0, 0.91),  # 4000K  cool white fluorescent
        (1.11, 1.0, 0.98),  # 4500K
        (1.05, 1.0, 1.03),  # 5000K  horizon daylight, D50
        (1.00, 1.0, 1.00),  # 5500K  mid-day sun, no cast
        (0.96, 1.0, 1.07),  # 6000K
        (0.92, 1.0, 1.14),  # 6500K  D65
        (0.89, 1.0, 1.20),  # 7000K
        (0.86, 1.0, 1.25),  # 7500K  north sky, D75
        (0.84, 1.0, 1.30),  # 8000K
        (0.82, 1.0, 1.35),  # 8500K
        (0.80, 1.0, 1.39),  # 9000K
        (0.79, 1.0, 1.43),  # 9500K
        (0.78, 1.0, 1.47),  # 10000K clear blue sky
    ),
)


def color_temperature_to_gain(
    temp_k: float,
    table: ColorTemperatureTable = REFERENCE_TEMPERATURE_TABLE,
) -> np.ndarray:
    """RGB gain (float64, shape (3,)) for a color temperature in Kelvin."""
    return table.gain(temp_k)


# -----------------------------------------------------------------------------
# Radial color-shading profile
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ColorShadingProfile:
    """RGB gains at N equally spaced normalized radii, r = 0 (center) … 1 (corner)."""
    gains: Tuple[RGB, ...]

    def __post_init__(self):
        if not self.gains:
            raise ValueError("ColorShadingProfile needs at least one sample")
        for g in self.gains:
            if len(g) != 3:
                raise ValueError(f"shading entries must be RGB triples, got {g!r}")

    def __len__(self) -> int:
        return len(self.gains)

    def gain(self, r) -> np.ndarray:
        """
        Interpolated RGB gain at normalized radius r (scalar or array).

        r is clamped to [0, 1] and mapped to index space idx = r·(N-1); the
        bracketing indices are floor(idx) and min(floor(idx)+1, N-1).

        Returns
        -------
        float32 array of shape r.shape + (3,)
        """
        table = np.asarray(self.gains, dtype=np.float32)
        n = table.shape[0]
        rr = np.clip(np.asarray(r, dtype=np.float32), 0.0, 1.0)
        idx = rr * np.float32(n - 1)
        i0 = np.floor(idx).astype(np.int64)
        i0 = np.minimum(i0, n - 1)
        i1 = np.minimum(i0 + 1, n - 1)
        frac = (idx - i0.astype(np.float32))[..., None]
        return table[i0] * (1.0 - frac) + table[i1] * frac


# Red rises and blue falls toward the corner (typical IR-cut filter shading).
DEFAULT_COLOR_SHADING: Tuple[RGB, ...] = (
    (1.00, 1.00, 1.00),
    (1.00, 1.00, 0.99),
    (1.01, 1.00, 0.98),
    (1.02, 0.99, 0.97),
    (1.04, 0.99, 0.95),
    (1.06, 0.98, 0.93),
    (1.09, 0.98, 0.91),
    (1.12, 0.97, 0.89),
    (1.16, 0.97, 0.87),
    (1.20, 0.96, 0.85),
)


def color_shading_gain(r, profile: ColorShadingProfile | Sequence[RGB]) -> np.ndarray:
    """Functional wrapper around ColorShadingProfile.gain."""
    if not isinstance(profile, ColorShadingProfile):
        profile = ColorShadingProfile(tuple(tuple(g) for g in profile))
    return profile.gain(r)


# -----------------------------------------------------------------------------
# Radial polynomials
# -----------------------------------------------------------------------------
def barrel_factor(r: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """a + b·r² + c·r⁴  (so the distorted radius is r·barrel_factor(r))."""
    a, b, c = (np.float32(v) for v in coeffs)
    r2 = r * r
    return a + b * r2 + c * r2 * r2


def chromatic_displacement(r: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """a·r² + b·r³ — relative radial magnification of one color channel."""
    a, b = (np.float32(v) for v in coeffs)
    r2 = r * r
    return a * r2 + b * r2 * r


def vignetting_gain(r: np.ndarray, coeffs: Sequence[float]) -> np.ndarray:
    """V(r) = a·r⁴ + b·r³ + c·r² + d·r + e."""
    a, b, c, d, e = (np.float32(v) for v in coeffs)
    r2 = r * r
    return a * r2 * r2 + b * r2 * r + c * r2 + d * r + e


# -----------------------------------------------------------------------------
# Per-run calibration artifacts
# -----------------------------------------------------------------------------
@dataclass
class RunArtifacts:
    """
    Calibration data produced while degrading and consumed while correcting.

    dead_pixels : sorted int64 flat indices into the (H, W, C) buffer that the
        dead-pixel injection forced to zero. Rebuilt every run from the fixed
        seed; real dead pixels do not move, this is a simulator simplification.
    optical_black : (OB_PIXEL_COUNT, 3) uint8 dark-reference samples, or None
        until the black-level stage has run.
    """
    dead_pixels: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    optical_black: Optional[np.ndarray] = None
