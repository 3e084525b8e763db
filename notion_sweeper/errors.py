"""
Error types raised by the sweeper.

Nothing inside the core recovers from these; they propagate to the CLI,
which reports them and exits non-zero.
"""

from typing import Any, Optional


class SweeperError(Exception):
    """Base class for all sweeper errors."""


class ConfigError(SweeperError, ValueError):
    """Missing surface ids, bad settings, or an unparsable checkpoint."""


class GatewayError(SweeperError):
    """Non-success response or malformed payload from Notion."""

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.status = status
        self.data = data


class CheckpointIOError(SweeperError, OSError):
    """The checkpoint file could not be written."""
