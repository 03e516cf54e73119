"""
isp_pipeline.optics
-------------------
Lens-side degradations: barrel distortion, lateral chromatic aberration,
radial color shading and vignetting, all driven by radial polynomials or
profiles around the image center.
"""
