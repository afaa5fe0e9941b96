"""
Background-removal and resampling service for single uploaded photos.

Exposes the raster data types, the compositing and resampling primitives,
the pipeline controller that drives an editing session, and the FastAPI
application wrapping it.
"""
