"""
Web application module.
FastAPI-based command surface for schedwatch.
"""

from .app import app

__all__ = ['app']
