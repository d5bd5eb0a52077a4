"""
IO module for conversation front-ends.
"""

from friday_companion.io.terminal_interface import TerminalInterface

__all__ = ["TerminalInterface"]
