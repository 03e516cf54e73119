"""
stages.py — tagged stage operations and the default stage orders

Every degradation and correction is registered here as a Stage: a name, a
function `(image, config, artifacts) -> image`, the config fields it reads and
the per-run artifacts it produces or consumes. The orchestrator runs stages by
identifier, so the chain order is data (PipelineConfig.degradation_order /
correction_order) rather than a hard-coded call sequence.

Default order
-------------
Degradation: white balance → lens distortion → color shading → chromatic
aberration → vignetting → black level → dead pixels, followed by the fixed
`output` copy. Correction runs the sensor-side repairs first (dead pixels,
black level) and then undoes the optical artifacts from the last applied to
the first, finishing with white balance.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Tuple
import numpy as np

from ..calibration.calibration_model import RunArtifacts
from ..correction.correction_model import (
    correct_black_level,
    correct_chromatic_aberration,
    correct_color_shading,
    correct_dead_pixels,
    correct_lens_distortion,
    correct_vignetting,
    correct_white_balance,
    correct_white_balance_auto,
)
from ..optics.optics_model import (
    apply_chromatic_aberration,
    apply_color_shading,
    apply_lens_distortion,
    apply_vignetting,
)
from ..sensor.sensor_model import (
    DEAD_PIXEL_SEED_OFFSET,
    OB_SEED_OFFSET,
    apply_black_level_offset,
    apply_white_balance_error,
    inject_dead_pixels,
    synthesize_optical_black,
)
from ..utils.sampling import check_same_shape

if TYPE_CHECKING:
    from ..config import PipelineConfig

StageFunc = Callable[[np.ndarray, "PipelineConfig", RunArtifacts], np.ndarray]

# Artifact tags
OPTICAL_BLACK = "optical_black"
DEAD_PIXEL_MAP = "dead_pixels"


@dataclass(frozen=True)
class Stage:
    """
    One tagged pipeline operation.

    name : identifier used in stage orders and result maps
    func : (image, config, artifacts) -> new image of the same shape
    params : PipelineConfig fields the stage reads
    produces / consumes : RunArtifacts fields written / read
    """
    name: str
    func: StageFunc
    params: Tuple[str, ...] = ()
    produces: Tuple[str, ...] = ()
    consumes: Tuple[str, ...] = ()

    def __call__(
        self,
        src: np.ndarray,
        dst: np.ndarray,
        config: "PipelineConfig",
        artifacts: RunArtifacts,
    ) -> np.ndarray:
        """
        Run the stage from `src` into the caller-owned buffer `dst`.

        Raises ValueError before touching `dst` if the buffers disagree on
        shape, and if the stage function returns a differently shaped result.
        """
        check_same_shape(src, dst, context=f"stage '{self.name}'")
        result = self.func(src, config, artifacts)
        if result.shape != src.shape:
            raise ValueError(f"stage '{self.name}' returned shape {result.shape}, expected {src.shape}")
        dst[...] = result
        return dst

    def __repr__(self):
        return f"Stage({self.name})"


# -----------------------------------------------------------------------------
# Degradation adapters
# -----------------------------------------------------------------------------
def _degrade_white_balance(image, config, artifacts):
    return apply_white_balance_error(image, config.color_temperature)


def _degrade_lens(image, config, artifacts):
    return apply_lens_distortion(image, config.barrel_coeffs)


def _degrade_color_shading(image, config, artifacts):
    return apply_color_shading(image, config.shading_profile)


def _degrade_chromatic_aberration(image, config, artifacts):
    return apply_chromatic_aberration(image, config.chromatic_coeffs_r, config.chromatic_coeffs_b)


def _degrade_vignetting(image, config, artifacts):
    return apply_vignetting(image, config.vignetting_coeffs)


def _degrade_black_level(image, config, artifacts):
    # OB samples are regenerated every run, independent of the image content
    rng = np.random.default_rng(config.seed + OB_SEED_OFFSET)
    artifacts.optical_black = synthesize_optical_black(config.black_level_offset, rng)
    return apply_black_level_offset(image, config.black_level_offset)


def _degrade_dead_pixels(image, config, artifacts):
    # Simplification: the map is redrawn every run from the fixed seed
    rng = np.random.default_rng(config.seed + DEAD_PIXEL_SEED_OFFSET)
    out, dead = inject_dead_pixels(image, config.dead_pixel_fraction, rng)
    artifacts.dead_pixels = dead
    return out


def _copy(image, config, artifacts):
    return image.copy()


# -----------------------------------------------------------------------------
# Correction adapters
# -----------------------------------------------------------------------------
def _correct_dead_pixels(image, config, artifacts):
    return correct_dead_pixels(image, artifacts.dead_pixels)


def _correct_black_level(image, config, artifacts):
    return correct_black_level(image, artifacts.optical_black)


def _correct_vignetting(image, config, artifacts):
    return correct_vignetting(image, config.vignetting_coeffs)


def _correct_chromatic_aberration(image, config, artifacts):
    return correct_chromatic_aberration(image, config.chromatic_coeffs_r, config.chromatic_coeffs_b)


def _correct_color_shading(image, config, artifacts):
    return correct_color_shading(image, config.shading_profile)


def _correct_lens(image, config, artifacts):
    return correct_lens_distortion(image, config.barrel_coeffs)


def _correct_white_balance(image, config, artifacts):
    return correct_white_balance(image, config.color_temperature)


def _correct_white_balance_auto(image, config, artifacts):
    return correct_white_balance_auto(image)


# -----------------------------------------------------------------------------
# Registries
# -----------------------------------------------------------------------------
DEGRADATION_STAGES: Dict[str, Stage] = {
    s.name: s for s in (
        Stage("white_balance", _degrade_white_balance, params=("color_temperature",)),
        Stage("lens_distortion", _degrade_lens, params=("barrel_coeffs",)),
        Stage("color_shading", _degrade_color_shading, params=("color_shading_profile",)),
        Stage("chromatic_aberration", _degrade_chromatic_aberration,
              params=("chromatic_coeffs_r", "chromatic_coeffs_b")),
        Stage("vignetting", _degrade_vignetting, params=("vignetting_coeffs",)),
        Stage("black_level", _degrade_black_level, params=("black_level_offset", "seed"),
              produces=(OPTICAL_BLACK,)),
        Stage("dead_pixels", _degrade_dead_pixels, params=("dead_pixel_fraction", "seed"),
              produces=(DEAD_PIXEL_MAP,)),
    )
}

# Always appended after the configured degradation order
OUTPUT_STAGE = Stage("output", _copy)

CORRECTION_STAGES: Dict[str, Stage] = {
    s.name: s for s in (
        Stage("dead_pixels", _correct_dead_pixels, consumes=(DEAD_PIXEL_MAP,)),
        Stage("black_level", _correct_black_level, consumes=(OPTICAL_BLACK,)),
        Stage("vignetting", _correct_vignetting, params=("vignetting_coeffs",)),
        Stage("chromatic_aberration", _correct_chromatic_aberration,
              params=("chromatic_coeffs_r", "chromatic_coeffs_b")),
        Stage("color_shading", _correct_color_shading, params=("color_shading_profile",)),
        Stage("lens", _correct_lens, params=("barrel_coeffs",)),
        Stage("white_balance", _correct_white_balance, params=("color_temperature",)),
        Stage("white_balance_auto", _correct_white_balance_auto),
    )
}

DEFAULT_DEGRADATION_ORDER: Tuple[str, ...] = (
    "white_balance",
    "lens_distortion",
    "color_shading",
    "chromatic_aberration",
    "vignetting",
    "black_level",
    "dead_pixels",
)

DEFAULT_CORRECTION_ORDER: Tuple[str, ...] = (
    "dead_pixels",
    "black_level",
    "vignetting",
    "chromatic_aberration",
    "color_shading",
    "lens",
    "white_balance",
)
