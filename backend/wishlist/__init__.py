"""Shared wishlist backend: catalog, search, claims and bulk edits"""

__version__ = "0.1.0"
