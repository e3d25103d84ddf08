"""Palette-based color background remover."""

__version__ = "1.0.0"
