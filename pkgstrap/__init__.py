"""pkgstrap — private dependency bootstrapper."""

__version__ = "0.1.0"
