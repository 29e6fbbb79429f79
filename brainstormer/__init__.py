"""Brainstormer: iterative whiteboard diagrams from natural-language requests."""

__version__ = "0.1.0"
