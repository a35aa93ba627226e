"""formatd: a formatting daemon that keeps formatter config warm between runs."""

__version__ = "0.1.0"
