"""
isp_pipeline.scenes
-------------------
Synthetic RGB reference scenes.
"""
