"""
Lesson corpus engine for early-years lesson planning.

This package keeps per-collection lesson numbering dense, maintains the half-term
buckets that reference lessons and activity stacks, and mirrors every change from a local
JSON cache to an optional PostgREST remote.
"""

from .config.loader import load_settings

__all__ = ["load_settings"]
