"""Bookcase - Services Package

This package contains service modules for external integrations:
- Google Books lookup service
- Cover image helpers
- HTTP client abstraction
"""
