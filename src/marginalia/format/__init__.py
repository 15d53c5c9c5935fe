"""Formatting utilities for marginalia notes."""

from .formatter import FormatOptions, FormatResult, format_file, format_note

__all__ = [
    "format_note",
    "format_file",
    "FormatOptions",
    "FormatResult",
]
