"""
Test Suite
==========

Test suite mirroring the screenshot_service package.

Test Categories:
- unit: Unit tests for individual pipeline components
- integration: HTTP contract tests against the FastAPI application
"""
