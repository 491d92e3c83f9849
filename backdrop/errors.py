"""Error taxonomy shared by the pipeline and the HTTP layer."""

from __future__ import annotations


class BackdropError(Exception):
    """Base exception for the service."""

    status_code = 500


class UploadError(BackdropError):
    """The request carried no usable file."""

    status_code = 400


class PayloadTooLargeError(BackdropError):
    status_code = 413


class CapacityError(BackdropError):
    """Admission pool and its wait queue are both full."""

    status_code = 503


class StageError(BackdropError):
    """A pipeline stage failed; ``stage`` is ``removal`` or ``generation``."""

    status_code = 500

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message


class ProgressStateError(BackdropError):
    """An illegal progress channel transition was requested."""


__all__ = [
    "BackdropError",
    "CapacityError",
    "PayloadTooLargeError",
    "ProgressStateError",
    "StageError",
    "UploadError",
]
