"""
Core Business Logic
==================

Core rendering logic for converting HTML into images.

Modules:
- errors: Error kinds raised by the render pipeline
- rendering: Browser management, admission control, wait policies, smart crop
  and the render pipeline itself
"""
