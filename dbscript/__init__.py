"""
dbscript – split and replay SQL scripts produced by database export tools.
"""
from __future__ import annotations

__version__ = "0.4.0"
