"""Typed execution graph with risk propagation and impact radius analysis."""

__version__ = "0.1.0"
