"""
isp_pipeline.sensor
-------------------
Sensor-side degradations: white-balance cast from the illuminant color
temperature, black-level offset with optical-black reference samples, and
dead-pixel injection.
"""
