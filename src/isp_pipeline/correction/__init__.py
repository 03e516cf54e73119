"""
isp_pipeline.correction
-----------------------
ISP corrections: dead-pixel repair, black-level subtraction from optical-black
samples, and inverses of the optical and white-balance degradations.
"""
