# src/promoreel/errors.py

"""
Exception hierarchy for the generate -> store -> publish pipeline.
"""

from __future__ import annotations

from typing import Any, Optional


class PromoreelError(Exception):
    """Base class for all pipeline errors."""


class AuthError(PromoreelError):
    """Service-account credential, signing or token exchange failure."""


class MalformedReferenceError(PromoreelError):
    """Operation reference does not match the expected resource path."""


class TransportError(PromoreelError):
    """A dependency answered with a non-success response or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body[:500] if body else body


class TransferError(TransportError):
    """Binary POST to a staged upload target failed."""


class PartialFailureError(TransportError):
    """HTTP call succeeded but the platform reported business-level errors."""

    def __init__(self, message: str, errors: list[Any]):
        super().__init__(message)
        self.errors = errors


class ReadinessTimeoutError(PromoreelError):
    """Attached media never exposed a playback URL within the attempt ceiling."""

    def __init__(self, media_ref: str, attempts: int):
        super().__init__(f"Media {media_ref} not ready after {attempts} attempts")
        self.media_ref = media_ref
        self.attempts = attempts


class AlreadyPublishedError(PromoreelError):
    """The job has already been attached to its product."""


class NotReadyError(PromoreelError):
    """The job has not finished generating."""


class NotFoundError(PromoreelError):
    """Missing job record or storage object."""


class InvalidRangeError(PromoreelError):
    """Requested byte range cannot be satisfied."""

    def __init__(self, message: str, total_size: Optional[int] = None):
        super().__init__(message)
        self.total_size = total_size
