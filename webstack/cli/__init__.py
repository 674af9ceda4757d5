"""
Command-line interface for webstack.
"""

from webstack.cli.main import cli

__all__ = ["cli"]
