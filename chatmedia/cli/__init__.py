"""
CLI module for chatmedia.
Contains command-line interface components and argument parsing.

This module provides:
- Subcommand parsing and validation
- Help text and usage examples
- Configuration creation from CLI arguments
"""

from .commands import main, run_command
from .parser import COMMANDS, ChatMediaArgumentParser, print_usage_examples

__all__ = ["ChatMediaArgumentParser", "COMMANDS", "print_usage_examples", "main", "run_command"]
