"""
isp_pipeline.utils
------------------
Pixel-buffer contract, sampling primitives, radial geometry and quality metrics.
"""
