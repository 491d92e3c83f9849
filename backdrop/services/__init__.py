"""HTTP clients for the external image providers."""

from __future__ import annotations


class ProviderError(RuntimeError):
    """A provider call failed at the transport or API level."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = ["ProviderError"]
