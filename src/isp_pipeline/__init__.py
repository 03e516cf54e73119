"""
isp_pipeline — camera ISP degradation / correction simulator
================================================
Lightweight, end-to-end simulation of what a camera does to an image and how
an ISP undoes it, organized as:
    scenes → pipeline (optics + sensor degradations → corrections) → utils (metrics)
Calibration data shared by both sides lives in `calibration`, the parameter
set in `config`.
"""
