"""
Tools for docrecords.

This module contains operational tools:
- cli: Inspect record history and pages from the command line
"""

from .cli import build_parser, main, run, setup_logging

__all__ = ["build_parser", "main", "run", "setup_logging"]
