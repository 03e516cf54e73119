"""
config.py — the tunable parameter set of one pipeline run

PipelineConfig is an immutable snapshot. The host keeps the live, mutable
copy (see pipeline.runner.PipelineRunner), builds a new snapshot with
`replace(...)` whenever a parameter is edited, and hands the snapshot to the
pipeline. Nothing inside a run can change it.

Values are validated on construction: malformed coefficient vectors,
out-of-range black level / dead-pixel fraction and unknown stage identifiers
raise ValueError. The color temperature is clamped into the range covered by
the reference temperature table rather than rejected.
"""

from __future__ import annotations
import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from .calibration.calibration_model import (
    DEFAULT_COLOR_SHADING,
    REFERENCE_TEMPERATURE_TABLE,
    RGB,
    ColorShadingProfile,
)
from .pipeline.stages import (
    CORRECTION_STAGES,
    DEFAULT_CORRECTION_ORDER,
    DEFAULT_DEGRADATION_ORDER,
    DEGRADATION_STAGES,
)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PipelineConfig:
    """
    Degradation / correction parameters.

    White balance
    -------------
    color_temperature : scene illuminant in Kelvin (clamped to 2500..10000)

    Optics
    ------
    barrel_coeffs : (a, b, c) of D(r) = r·(a + b·r² + c·r⁴)
    chromatic_coeffs_r / chromatic_coeffs_b : (a, b) of C(r) = a·r² + b·r³
        for the red / blue channel (green is the reference)
    vignetting_coeffs : (a, b, c, d, e) of V(r) = a·r⁴ + b·r³ + c·r² + d·r + e
    color_shading_profile : RGB gains at equal radial steps, center → corner

    Sensor
    ------
    black_level_offset : dark offset added to every sample (0..255)
    dead_pixel_fraction : probability that a channel sample is dead (0..1)

    Ordering
    --------
    degradation_order / correction_order : stage identifiers, run in order

    Reproducibility
    ---------------
    seed : base seed; optical-black noise uses `seed`, dead pixels `seed + 1`
    """
    # White balance
    color_temperature: float = 3500.0

    # Optics
    barrel_coeffs: Tuple[float, float, float] = (0.7, 0.3, -0.1)
    chromatic_coeffs_r: Tuple[float, float] = (0.006, 0.003)
    chromatic_coeffs_b: Tuple[float, float] = (-0.006, -0.003)
    vignetting_coeffs: Tuple[float, float, float, float, float] = (-0.5, 0.0, 0.0, -0.2, 1.0)
    color_shading_profile: Tuple[RGB, ...] = DEFAULT_COLOR_SHADING

    # Sensor
    black_level_offset: int = 20
    dead_pixel_fraction: float = 0.0001

    # Ordering
    degradation_order: Tuple[str, ...] = DEFAULT_DEGRADATION_ORDER
    correction_order: Tuple[str, ...] = DEFAULT_CORRECTION_ORDER

    # Reproducibility
    seed: int = 1234

    def __post_init__(self):
        temp = _number("color_temperature", self.color_temperature, float)
        clamped = REFERENCE_TEMPERATURE_TABLE.clamp(temp)
        if clamped != temp:
            logger.debug("color_temperature %.1f K clamped to %.1f K", temp, clamped)
        object.__setattr__(self, "color_temperature", clamped)

        object.__setattr__(self, "barrel_coeffs", _float_tuple("barrel_coeffs", self.barrel_coeffs, 3))
        object.__setattr__(self, "chromatic_coeffs_r", _float_tuple("chromatic_coeffs_r", self.chromatic_coeffs_r, 2))
        object.__setattr__(self, "chromatic_coeffs_b", _float_tuple("chromatic_coeffs_b", self.chromatic_coeffs_b, 2))
        object.__setattr__(self, "vignetting_coeffs", _float_tuple("vignetting_coeffs", self.vignetting_coeffs, 5))

        try:
            entries = tuple(self.color_shading_profile)
        except TypeError:
            raise ValueError(
                f"color_shading_profile must be a sequence of RGB gain triples, got {self.color_shading_profile!r}"
            ) from None
        profile = tuple(_float_tuple("color_shading_profile entry", g, 3) for g in entries)
        ColorShadingProfile(profile)  # raises on an empty profile
        object.__setattr__(self, "color_shading_profile", profile)

        offset = self.black_level_offset
        if isinstance(offset, bool) or _number("black_level_offset", offset, int) != offset or not 0 <= int(offset) <= 255:
            raise ValueError(f"black_level_offset must be an integer in [0, 255], got {offset!r}")
        object.__setattr__(self, "black_level_offset", int(offset))

        fraction = _number("dead_pixel_fraction", self.dead_pixel_fraction, float)
        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"dead_pixel_fraction must be in [0, 1], got {fraction}")
        object.__setattr__(self, "dead_pixel_fraction", fraction)

        object.__setattr__(self, "degradation_order", _stage_order("degradation_order", self.degradation_order, DEGRADATION_STAGES))
        object.__setattr__(self, "correction_order", _stage_order("correction_order", self.correction_order, CORRECTION_STAGES))

        seed = self.seed
        if isinstance(seed, bool) or _number("seed", seed, int) != seed or int(seed) < 0:
            raise ValueError(f"seed must be a non-negative integer, got {seed!r}")
        object.__setattr__(self, "seed", int(seed))

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------
    @property
    def shading_profile(self) -> ColorShadingProfile:
        return ColorShadingProfile(self.color_shading_profile)

    def replace(self, **changes: Any) -> "PipelineConfig":
        """New snapshot with some fields changed (the original is untouched)."""
        return dataclasses.replace(self, **changes)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Plain-python representation (lists instead of tuples) for YAML."""
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "color_shading_profile":
                value = [list(g) for g in value]
            elif isinstance(value, tuple):
                value = list(value)
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "PipelineConfig":
        """
        Build a config from a mapping; missing keys take their defaults.

        Unknown keys are reported with a warning and ignored.
        """
        data = dict(data or {})
        known = {f.name for f in dataclasses.fields(cls)}
        extra = sorted(set(data) - known)
        if extra:
            logger.warning("Unknown config keys in PipelineConfig (ignored): %s", extra)
        kwargs = {k: v for k, v in data.items() if k in known}
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PipelineConfig":
        """
        Load a configuration from a YAML file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        yaml.YAMLError
            If the file is not valid YAML.
        ValueError
            If the top level is not a mapping or a value fails validation.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
        logger.info("Loaded pipeline config from %s", path)
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path) -> None:
        """Write every field (defaults included) to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _float_tuple(name: str, values, length: int) -> Tuple[float, ...]:
    try:
        out = tuple(float(v) for v in values)
    except TypeError:
        raise ValueError(f"{name} must be a sequence of {length} numbers, got {values!r}") from None
    if len(out) != length:
        raise ValueError(f"{name} must have {length} values, got {len(out)}")
    return out


def _number(name: str, value, kind):
    """Coerce a scalar with ``kind`` (int or float), reporting failures as ValueError."""
    try:
        return kind(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _stage_order(name: str, order, registry) -> Tuple[str, ...]:
    if isinstance(order, str):
        order = parse_stage_list(order)
    try:
        order = tuple(str(s) for s in order)
    except TypeError:
        raise ValueError(f"{name} must be a list of stage names, got {order!r}") from None
    unknown = [s for s in order if s not in registry]
    if unknown:
        raise ValueError(f"{name}: unknown stage(s) {unknown}. Available: {list(registry)}")
    # each stage's buffer is keyed by its name in the run result
    repeated = sorted({s for s in order if order.count(s) > 1})
    if repeated:
        raise ValueError(f"{name}: stage(s) {repeated} listed more than once")
    return order


def parse_stage_list(text: str) -> Tuple[str, ...]:
    """'white_balance, lens_distortion' → ('white_balance', 'lens_distortion')."""
    return tuple(s.strip() for s in text.split(",") if s.strip())
