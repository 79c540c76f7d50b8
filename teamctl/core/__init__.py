"""Shared building blocks: paths, configuration and error values."""
