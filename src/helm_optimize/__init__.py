"""Helm plugin that rewrites container resources with recommendations before deploy."""

__version__ = "1.0.0"
