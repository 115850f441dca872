"""Version information for TheReader."""

__version__ = "0.1.0"
