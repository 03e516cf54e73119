"""
isp_pipeline.pipeline
---------------------
Stage registry (tagged operations, default orders) and the orchestrator that
runs one degradation + correction pass.
"""
