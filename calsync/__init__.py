"""
calsync - Calendar collection mirror synchronization

Keeps a local mirror of the calendar collections hosted on a journal server
and drives per-collection synchronization for every mirrored calendar.
"""

__version__ = "0.3.0"
