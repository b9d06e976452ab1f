"""
Utility modules for SiFli Flasher.

This package groups pure helpers that are shared across core logic and the CLI.
"""

from .parsing import parse_address, parse_baud, split_file_argument

__all__ = [
    "parse_address",
    "parse_baud",
    "split_file_argument",
]
