"""Formatting service core: config resolution, caching and formatting."""
