from __future__ import annotations


class MixdownError(Exception):
    """Base error for the mixdown library."""


class InvalidConfigError(MixdownError):
    """Raised when a config or volume list cannot be validated."""


class DecodeError(MixdownError):
    """Raised when an input file cannot be decoded into samples."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index

    def __str__(self) -> str:
        message = super().__str__()
        if self.index is None:
            return message
        return f"track {self.index}: {message}"


class DeviceError(MixdownError):
    """Raised when a GPU adapter, device, or shader pipeline cannot be built."""


class SyncError(MixdownError):
    """Raised when reading mixed samples back from the GPU fails."""


class EmptyInputError(MixdownError):
    """Raised when there is nothing to mix."""
