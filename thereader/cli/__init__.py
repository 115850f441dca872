"""Command-line interface for TheReader."""
