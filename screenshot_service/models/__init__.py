"""
Data Models
===========

Pydantic models for API requests, responses and internal render records.
"""
