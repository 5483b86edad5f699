"""
FastAPI REST Endpoints
======================

REST API endpoints for HTTP access to the screenshot service.

Endpoints:
- POST /screenshot: Render HTML to a PNG, JPEG or WebP image
- GET /health: Browser connectivity and service health
- GET /stats: Running request and browser statistics
- GET /info: Public service limits
"""
