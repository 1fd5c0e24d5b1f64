"""
daynote - a day-keyed note journal with semantic recall.
This package implements the local persistence and retrieval engine behind a
one-note-per-day journal: a durable note store, an autosave coordinator that
decides when editor content becomes durable, and an embedding index used to
find related notes and to ground a chat assistant in the user's own writing.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("daynote")
except PackageNotFoundError:
    __version__ = "0.3.0"
