"""
CPU-8 SDK Command-Line Interface
================================

This package provides the command-line tools of the CPU-8 SDK:

- **c8cc**: C8 compiler

The tool is a Click application with help text and exit codes shared
through cpu8_sdk.cli.errors.
"""

__all__ = ["c8cc"]
