"""
Utility modules for the care connect backend.

This package contains shared helpers used across the application,
currently the UTC datetime utilities.
"""

from utils.datetime_utils import ensure_utc, utc_now

__all__ = ['ensure_utc', 'utc_now']
