"""
ISP Pipeline Simulator (full run)
reference scene → degradation chain → correction chain

WHY THIS FILE
-------------
The host around the pipeline library. It
  1) builds a clean RGB reference (synthetic scene or an image file),
  2) assembles a PipelineConfig (YAML file, then CLI overrides),
  3) runs every degradation stage and every correction stage once,
  4) saves each stage buffer as PNG plus a two-row montage, and logs
     PSNR / per-channel error against the reference for every stage.

RUN
---
  isp-sim --scene siemens_star --size 512
  isp-sim --scene color_bars --temperature 6500 --outdir outputs/daylight
  isp-sim --image photo.png --config my_lens.yaml --show
  isp-sim --scene uniform --correction-order dead_pixels,black_level,white_balance_auto

OUTPUT
------
<outdir>/degraded_<stage>.png, <outdir>/corrected_<stage>.png,
<outdir>/pipeline_stages.png, <outdir>/config.yaml (the effective parameters)
"""

from __future__ import annotations
import argparse
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np
import matplotlib
import matplotlib.image as mpimg
import matplotlib.pyplot as plt

from isp_pipeline.config import PipelineConfig, parse_stage_list
from isp_pipeline.pipeline.runner import PipelineResult, run_pipeline
from isp_pipeline.scenes.scene_generator import SCENE_KINDS, generate_scene
from isp_pipeline.utils.metrics_module import channel_mean_error, compute_psnr
from isp_pipeline.utils.sampling import to_uint8

logger = logging.getLogger("isp_pipeline.cli")


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------
def load_image(path: str | Path) -> np.ndarray:
    """
    Read an image file into an (H, W, C) uint8 reference buffer.

    PNGs come back from matplotlib as float in [0, 1]; other formats as uint8.
    Grayscale is replicated to RGB; an alpha channel is kept as a 4th channel.
    """
    img = mpimg.imread(str(path))
    if np.issubdtype(img.dtype, np.floating):
        img = to_uint8(np.clip(img, 0.0, 1.0) * 255.0 + 0.5)
    else:
        img = img.astype(np.uint8)
    if img.ndim == 2:
        img = np.repeat(img[..., None], 3, axis=2)
    if img.shape[2] < 3:
        raise ValueError(f"{path}: need at least 3 channels, got {img.shape[2]}")
    return np.ascontiguousarray(img)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """YAML config (if any) with the explicitly given CLI flags applied on top."""
    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()

    overrides = {}
    if args.temperature is not None:
        overrides["color_temperature"] = args.temperature
    if args.black_level is not None:
        overrides["black_level_offset"] = args.black_level
    if args.dead_fraction is not None:
        overrides["dead_pixel_fraction"] = args.dead_fraction
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.degradation_order is not None:
        overrides["degradation_order"] = parse_stage_list(args.degradation_order)
    if args.correction_order is not None:
        overrides["correction_order"] = parse_stage_list(args.correction_order)
    return config.replace(**overrides) if overrides else config


# -----------------------------------------------------------------------------
# Outputs
# -----------------------------------------------------------------------------
def _rgb(buffer: np.ndarray) -> np.ndarray:
    return buffer[..., :3]


def save_stage_images(result: PipelineResult, outdir: Path) -> None:
    for name, buf in result.degraded.items():
        plt.imsave(outdir / f"degraded_{name}.png", _rgb(buf))
    for name, buf in result.corrected.items():
        plt.imsave(outdir / f"corrected_{name}.png", _rgb(buf))


def save_montage(reference: np.ndarray, result: PipelineResult, outdir: Path) -> plt.Figure:
    """Two rows: reference + degradation stages, then correction stages."""
    rows = [
        ("Degradation stages", [("reference", reference)] + list(result.degraded.items())),
        ("Correction stages", list(result.corrected.items())),
    ]
    ncols = max(len(panels) for _, panels in rows)
    fig, axs = plt.subplots(2, ncols, figsize=(2.4 * ncols, 5.2), squeeze=False)
    for r, (row_title, panels) in enumerate(rows):
        for c in range(ncols):
            ax = axs[r, c]
            ax.axis("off")
            if c < len(panels):
                name, buf = panels[c]
                ax.imshow(_rgb(buf), vmin=0, vmax=255)
                ax.set_title(name, fontsize=8)
        axs[r, 0].text(-0.08, 0.5, row_title, transform=axs[r, 0].transAxes,
                       rotation=90, va="center", ha="right", fontsize=9)
    fig.tight_layout()
    fig.savefig(outdir / "pipeline_stages.png", dpi=150)
    return fig


def log_stage_metrics(reference: np.ndarray, buffers: Dict[str, np.ndarray], kind: str) -> None:
    for name, buf in buffers.items():
        err = channel_mean_error(buf, reference)
        logger.info(
            "%-9s %-20s PSNR %6.2f dB | mean error R %+6.2f G %+6.2f B %+6.2f",
            kind, name, compute_psnr(buf, reference), err[0], err[1], err[2],
        )


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------
def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="ISP Pipeline Simulator (degradation → correction)")
    p.add_argument("--scene", default="siemens_star", choices=SCENE_KINDS, help="synthetic reference scene")
    p.add_argument("--size", type=int, default=512, help="scene canvas size (pixels)")
    p.add_argument("--image", default=None, help="reference image file (overrides --scene)")
    p.add_argument("--config", default=None, help="YAML file with PipelineConfig fields")
    p.add_argument("--temperature", type=float, default=None, help="illuminant color temperature (K)")
    p.add_argument("--black-level", type=int, default=None, help="black level offset (0..255)")
    p.add_argument("--dead-fraction", type=float, default=None, help="dead sample probability (0..1)")
    p.add_argument("--seed", type=int, default=None, help="base random seed")
    p.add_argument("--degradation-order", default=None, help="comma-separated degradation stage names")
    p.add_argument("--correction-order", default=None, help="comma-separated correction stage names")
    p.add_argument("--outdir", default="outputs", help="output directory")
    p.add_argument("--show", action="store_true", help="show the stage montage in a window")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if not args.show:
        matplotlib.use("Agg")

    try:
        config = build_config(args)
        if args.image:
            reference = load_image(args.image)
            logger.info("Reference image %s %s", args.image, reference.shape)
        else:
            reference = generate_scene(args.scene, args.size)
            logger.info("Reference scene '%s' %dx%d", args.scene, args.size, args.size)
        result = run_pipeline(reference, config)
    except (ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    config.to_yaml(outdir / "config.yaml")
    save_stage_images(result, outdir)
    fig = save_montage(reference, result, outdir)

    log_stage_metrics(reference, result.degraded, "degraded")
    log_stage_metrics(reference, result.corrected, "corrected")
    logger.info("Saved outputs to: %s", outdir.resolve())

    if args.show:
        plt.show()
    plt.close(fig)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
