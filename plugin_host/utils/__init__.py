"""Utility functions for the plugin host."""

from .sse_formatter import format_sse_message, message_stream

__all__ = [
    'format_sse_message',
    'message_stream',
]
