"""
Rendering Module
===============

HTML to image rendering with browser automation.

Components:
- engine: Playwright adapter exposing browser sessions
- browser_manager: Browser lifecycle, health probing and restarts
- admission: Concurrency limiting for active render sessions
- modes: Render mode classification and wait policies
- readiness: Image and font readiness waiting
- smart_crop: Content bounding box computation
- html_preprocessor: HTML normalization before injection
- image_encoder: Post-capture transcoding with Pillow
- pipeline: Orchestration of a single render request
"""
