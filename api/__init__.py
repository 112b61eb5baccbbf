"""
Demo API for the lifecycle notification bus.

This package provides a single FastAPI application that exposes:
- Demo endpoints running lifecycle scenarios on a fresh bus
- Namespace attachment listing for the demo entity types
"""

from api.main import app

__all__ = ["app"]
