"""
HTTP surface of the booking engine.
"""

from .app import create_app

__all__ = ["create_app"]
