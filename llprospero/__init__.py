"""Passes, a PBM renderer and an x86 AVX backend for implicit-surface expression programs."""

__version__ = "0.1.0"