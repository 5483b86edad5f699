"""
Screenshot Service
==================

An HTTP service that rasterizes arbitrary HTML markup into PNG, JPEG or WebP
images using a shared headless Chromium instance.

This package provides:
- FastAPI REST endpoints for screenshots, health, statistics and service info
- A render pipeline with admission control, content-aware wait policies and
  smart cropping
- Browser lifecycle management with health probing and planned restarts
"""

__version__ = "1.1.2"
__author__ = "Screenshot Service Team"
