"""
Gravity Harness command-line tools.
"""

from .main import cli

__all__ = ["cli"]
