"""Utility modules for Beaver."""

from beaver_core.utils.log import setup_logging

__all__ = [
    "setup_logging",
]
