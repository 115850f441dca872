"""TheReader - photographed books turned into highlighted, spoken text."""

from thereader.version import __version__

__all__ = ["__version__"]
