"""Errors raised by the control plane transport."""

from __future__ import annotations


class ControlPlaneError(Exception):
    """Base for every failed control plane call.

    Attributes:
        status_code: HTTP status of the last response, or ``None`` when no
                     response was received.
        server_message: ``message`` from the response envelope, if any.
    """

    def __init__(self, message: str, status_code: int | None = None, server_message: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message


class EnvelopeError(ControlPlaneError):
    """HTTP 200 whose envelope reports failure, or carries no usable envelope."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        server_message: str = "",
        code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, server_message=server_message)
        self.code = code


class RetriesExhaustedError(ControlPlaneError):
    """A retryable failure persisted through every allowed attempt."""

    def __init__(self, message: str, attempts: int, status_code: int | None = None, server_message: str = "") -> None:
        super().__init__(message, status_code=status_code, server_message=server_message)
        self.attempts = attempts
