"""Shared utilities for upshift."""

from ._logging import LogFormatType, create_logger, resolve_log_level

__all__ = ["LogFormatType", "create_logger", "resolve_log_level"]
