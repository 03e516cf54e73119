"""
runner.py — run the degradation and correction chains once, end to end

The orchestrator owns nothing between runs. For each run it
  1) validates the reference buffer and the stage orders,
  2) creates fresh RunArtifacts (dead-pixel map, optical-black samples),
  3) runs the degradation stages in order, each into its own buffer obtained
     from the BufferProvider, then copies the last one into `output`,
  4) runs the correction stages in order starting from `output`,
  5) publishes every buffer and returns them in a PipelineResult.

The host decides *when* to run. PipelineRunner wraps the live, mutable
parameter set with a dirty flag: edits mark it dirty, `run_if_dirty` runs once
on an immutable snapshot and clears the flag.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

import numpy as np

from ..calibration.calibration_model import RunArtifacts
from ..config import PipelineConfig
from ..utils.sampling import check_buffer
from .stages import CORRECTION_STAGES, DEGRADATION_STAGES, OUTPUT_STAGE, Stage

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Buffer collaborator
# -----------------------------------------------------------------------------
@runtime_checkable
class BufferProvider(Protocol):
    """Resource-manager side of the pipeline: hands out and publishes buffers."""

    def allocate(self, shape: Tuple[int, ...], dtype: Any) -> np.ndarray:
        """Return a writable buffer of exactly `shape` and `dtype`."""
        ...

    def publish(self, name: str, buffer: np.ndarray) -> None:
        """Mark `buffer` as updated for external consumers (display, disk, ...)."""
        ...


class NumpyBufferProvider:
    """Default provider: plain numpy allocation, publication is only logged."""

    def allocate(self, shape: Tuple[int, ...], dtype: Any) -> np.ndarray:
        return np.empty(shape, dtype=dtype)

    def publish(self, name: str, buffer: np.ndarray) -> None:
        logger.debug("published %s %s", name, buffer.shape)


# -----------------------------------------------------------------------------
# Result
# -----------------------------------------------------------------------------
@dataclass
class PipelineResult:
    """
    Buffers of one run, keyed by stage identifier in execution order.

    degraded : degradation stage buffers, ending with "output"
    corrected : correction stage buffers
    artifacts : calibration data recorded during degradation
    """
    degraded: Dict[str, np.ndarray] = field(default_factory=dict)
    corrected: Dict[str, np.ndarray] = field(default_factory=dict)
    artifacts: RunArtifacts = field(default_factory=RunArtifacts)

    @property
    def degraded_image(self) -> np.ndarray:
        return self.degraded[OUTPUT_STAGE.name]

    @property
    def corrected_image(self) -> np.ndarray:
        """Last correction buffer, or the degraded output when no correction ran."""
        if not self.corrected:
            return self.degraded_image
        return next(reversed(self.corrected.values()))


# -----------------------------------------------------------------------------
# Single run
# -----------------------------------------------------------------------------
def check_stage_dependencies(config: PipelineConfig) -> None:
    """
    Fail fast when a correction consumes an artifact no degradation produces.

    E.g. black-level correction without the black-level degradation has no
    optical-black samples to estimate from.
    """
    produced = set()
    for name in config.degradation_order:
        produced.update(DEGRADATION_STAGES[name].produces)
    for name in config.correction_order:
        missing = [a for a in CORRECTION_STAGES[name].consumes if a not in produced]
        if missing:
            raise ValueError(
                f"correction stage '{name}' needs {missing}, which no stage in "
                f"degradation_order {list(config.degradation_order)} produces"
            )


def _run_chain(
    stages: Tuple[Stage, ...],
    src: np.ndarray,
    config: PipelineConfig,
    artifacts: RunArtifacts,
    provider: BufferProvider,
    kind: str,
) -> Dict[str, np.ndarray]:
    buffers: Dict[str, np.ndarray] = {}
    for stage in stages:
        dst = provider.allocate(src.shape, np.uint8)
        t0 = time.perf_counter()
        stage(src, dst, config, artifacts)
        logger.debug(
            "%s stage %-20s %.1f ms %s",
            kind,
            stage.name,
            1e3 * (time.perf_counter() - t0),
            {p: getattr(config, p) for p in stage.params},
        )
        provider.publish(f"{kind}/{stage.name}", dst)
        buffers[stage.name] = dst
        src = dst
    return buffers


def run_pipeline(
    reference: np.ndarray,
    config: Optional[PipelineConfig] = None,
    provider: Optional[BufferProvider] = None,
) -> PipelineResult:
    """
    Degrade `reference` with the configured artifacts, then correct it.

    Parameters
    ----------
    reference : (H, W, C) uint8, C >= 3
        Clean reference image. Never modified.
    config : PipelineConfig, optional
        Parameter snapshot (defaults if omitted).
    provider : BufferProvider, optional
        Buffer allocation/publication collaborator (numpy by default).

    Returns
    -------
    PipelineResult with one buffer per stage, all shaped like `reference`.

    Raises
    ------
    ValueError
        If the reference is not a valid buffer, a correction needs an artifact
        the degradation order does not produce, or any stage buffer has a
        different shape than the reference.
    """
    config = config or PipelineConfig()
    provider = provider or NumpyBufferProvider()
    h, w, c = check_buffer(reference, "reference")
    check_stage_dependencies(config)

    logger.info(
        "Running pipeline on %dx%dx%d: degradation=%s correction=%s",
        w, h, c, list(config.degradation_order), list(config.correction_order),
    )
    t0 = time.perf_counter()

    artifacts = RunArtifacts()
    degradation = tuple(DEGRADATION_STAGES[n] for n in config.degradation_order) + (OUTPUT_STAGE,)
    degraded = _run_chain(degradation, reference, config, artifacts, provider, "degraded")

    correction = tuple(CORRECTION_STAGES[n] for n in config.correction_order)
    corrected = _run_chain(correction, degraded[OUTPUT_STAGE.name], config, artifacts, provider, "corrected")

    logger.info(
        "Pipeline finished in %.1f ms (%d dead samples, OB samples %s)",
        1e3 * (time.perf_counter() - t0),
        artifacts.dead_pixels.size,
        "recorded" if artifacts.optical_black is not None else "absent",
    )
    return PipelineResult(degraded=degraded, corrected=corrected, artifacts=artifacts)


# -----------------------------------------------------------------------------
# Host-facing runner with a dirty flag
# -----------------------------------------------------------------------------
class PipelineRunner:
    """
    Holds the live parameter set and reprocesses only when asked.

    Example:
        >>> runner = PipelineRunner()
        >>> result = runner.run_if_dirty(reference)      # first run always happens
        >>> runner.run_if_dirty(reference) is None        # nothing changed
        True
        >>> runner.update_config(color_temperature=6500)
        >>> result = runner.run_if_dirty(reference)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        provider: Optional[BufferProvider] = None,
    ):
        self._config = config or PipelineConfig()
        self.provider = provider or NumpyBufferProvider()
        self._dirty = True
        self.last_result: Optional[PipelineResult] = None

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def dirty(self) -> bool:
        return self._dirty

    def request_reprocess(self) -> None:
        self._dirty = True

    def set_config(self, config: PipelineConfig) -> None:
        """Swap in a whole new snapshot; marks dirty only if it differs."""
        if config != self._config:
            self._config = config
            self._dirty = True

    def update_config(self, **changes: Any) -> None:
        """Edit parameters (validated immediately); marks dirty if anything changed."""
        self.set_config(self._config.replace(**changes))

    def run_if_dirty(self, reference: np.ndarray) -> Optional[PipelineResult]:
        """Run once on the current snapshot if a reprocess is pending; else None."""
        if not self._dirty:
            return None
        snapshot = self._config
        result = run_pipeline(reference, snapshot, self.provider)
        self._dirty = False
        self.last_result = result
        return result
