"""Errors raised by websocket price adapters.

Configuration errors only happen while building an adapter. Every other
error is scoped to the single frame (or subscription call) that raised it and
leaves the adapter usable for the next one.
"""

from __future__ import annotations


class AdapterError(Exception):
    """Base class for adapter failures."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ConfigError(AdapterError):
    """Market map or websocket config rejected at construction time."""


class DecodeError(AdapterError):
    """An inbound frame could not be interpreted."""


class EnvelopeDecodeError(DecodeError):
    """The frame is not a JSON object carrying a string ``event`` field."""


class BodyDecodeError(DecodeError):
    """The envelope matched but the body does not fit the expected shape."""


class UnknownEventError(DecodeError):
    def __init__(self, event: str, provider: str | None = None) -> None:
        super().__init__(f"unknown message type {event!r}", provider)
        self.event = event


class SubscriptionError(AdapterError):
    """The venue acknowledged a subscription request with a failure."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.code = code


class EncodeError(AdapterError):
    """An outbound frame could not be encoded."""
