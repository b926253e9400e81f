"""Canonicalization pipeline for DJ mix catalogs."""

__version__ = "0.1.0"
