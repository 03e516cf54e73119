"""
metrics_module.py — quality metrics for comparing stage buffers to the reference

WHAT THIS MODULE PROVIDES
-------------------------
• compute_snr(img_test, img_ref)
    Frame-level signal-to-noise ratio: the reference is the "signal", the
    difference to it is the "noise".

• compute_psnr(img_test, img_ref)
    Peak SNR for 8-bit buffers (peak = 255). Identical frames give +inf.

• channel_mean_error(img_test, img_ref)
    Signed per-channel mean difference (R, G, B). A white-balance cast or a
    residual black level shows up here long before it moves PSNR much.

LEARNING NOTES
--------------
• Geometric stages (lens, lateral color) move content by sub-pixel amounts;
  PSNR punishes that heavily on sharp targets even when the image looks right.
  Compare flat targets for the photometric stages, edges for the geometric ones.
• Metrics use the three leading channels only, like the stages themselves.

REFERENCES (short list)
-----------------------
• Wang, Z., Bovik, A. C. (2009). Mean squared error: Love it or leave it?
  IEEE Signal Processing Magazine 26(1).
"""

from __future__ import annotations
import numpy as np

from .sampling import check_same_shape

PEAK_8BIT = 255.0


def _rgb_pair(img_test: np.ndarray, img_ref: np.ndarray):
    check_same_shape(img_ref, img_test, context="metric")
    return img_test[..., :3].astype(np.float64), img_ref[..., :3].astype(np.float64)


# -----------------------------------------------------------------------------
# Simple SNR (frame-level)
# -----------------------------------------------------------------------------
def compute_snr(img_test: np.ndarray, img_ref: np.ndarray) -> float:
    """
    Compute a frame-level SNR in dB.

    Definition
    ----------
    SNR = 20 * log10( ||ref||_2 / ||ref - test||_2 )

    Parameters
    ----------
    img_test : (H, W, C) uint8
        The observed (e.g., degraded or corrected) image.
    img_ref : (H, W, C) uint8
        The clean reference, same shape.

    Returns
    -------
    snr_db : float
        Signal-to-noise ratio in decibels (+inf for identical frames).
    """
    y, ref = _rgb_pair(img_test, img_ref)
    den = np.linalg.norm((ref - y).ravel())
    if den == 0.0:
        return float("inf")
    num = np.linalg.norm(ref.ravel()) + 1e-12
    return float(20.0 * np.log10(num / den))


def compute_psnr(img_test: np.ndarray, img_ref: np.ndarray, peak: float = PEAK_8BIT) -> float:
    """PSNR = 10 * log10(peak² / MSE) in dB; +inf when MSE is 0."""
    y, ref = _rgb_pair(img_test, img_ref)
    mse = float(np.mean((ref - y) ** 2))
    if mse == 0.0:
        return float("inf")
    return float(10.0 * np.log10(peak * peak / mse))


def channel_mean_error(img_test: np.ndarray, img_ref: np.ndarray) -> np.ndarray:
    """Mean of (test - ref) per R, G, B channel, shape (3,) float64."""
    y, ref = _rgb_pair(img_test, img_ref)
    return (y - ref).reshape(-1, 3).mean(axis=0)
