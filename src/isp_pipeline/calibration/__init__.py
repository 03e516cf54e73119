"""
isp_pipeline.calibration
------------------------
Lookup tables, radial polynomials and per-run calibration artifacts shared by
the degradation and correction stages.
"""
