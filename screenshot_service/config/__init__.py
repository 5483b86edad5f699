"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Immutable application settings, wait policies and crop parameters
- logging: Structured logging configuration
"""
