"""Rebuilding flow, markup parts and html links from the raw text of MOBI/KF8 ebooks."""

__version__ = "0.1.0"
__all__ = ["attributes", "links", "model", "parts", "positions"]