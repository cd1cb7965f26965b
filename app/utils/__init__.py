"""Utility functions"""

from app.utils.dates import utcnow

__all__ = ["utcnow"]
