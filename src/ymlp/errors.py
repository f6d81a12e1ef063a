"""Error hierarchy raised by the YMLP client.

Every failure of a call surfaces as one of these; none are retried.
"""

from __future__ import annotations

from typing import Optional


class YmlpError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"[{self.code}] {self.message}"


class InvalidArgument(YmlpError):
    """Caller misuse detected before any request is sent."""


class TransportError(YmlpError):
    """Network-layer failure: connection refused, DNS, TLS, timeout."""


class MalformedResponse(YmlpError):
    """Body could not be decoded into a ``{Code, Output}`` envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiError(YmlpError):
    """The service answered with a non-zero ``Code``."""

    def __init__(self, message: str, code: int):
        super().__init__(message, code)
