"""Error taxonomy for tempvoice."""

from __future__ import annotations


class TempVoiceError(Exception):
    """Base exception for all tempvoice errors."""


class RemoteCallFailed(TempVoiceError):
    """A directory call (create, delete, move, permissions, metadata) failed."""

    def __init__(self, operation: str, channel_id: str | None, error: str | None) -> None:
        self.operation = operation
        self.channel_id = channel_id
        self.error = error or "unknown_error"
        super().__init__(f"{operation} failed for {channel_id or '-'}: {self.error}")


class LedgerIOFailed(TempVoiceError):
    """The durable ledger could not be read or written."""


class UnknownChannelReference(TempVoiceError):
    """A channel ID is neither a lobby nor a managed room."""


class ConfigError(TempVoiceError):
    """Invalid startup configuration."""
