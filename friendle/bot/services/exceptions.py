"""Exceptions raised by the bot-side puzzle pipeline.

None of these abort a generation run. Channel, acquisition and builder
failures are absorbed where they occur and turn into "no puzzle for this
game"; ingestion failures are logged per item.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base exception for pipeline services."""


class ChannelUnreadable(ServiceError):
    """A channel could not be read (missing permission or fetch error)."""

    def __init__(self, channel_id: int | str, reason: str = ""):
        self.channel_id = channel_id
        self.reason = reason
        message = f"Channel {channel_id} is unreadable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AcquisitionExhausted(ServiceError):
    """A scan spent its budget without finding a single matching message."""

    def __init__(self, strategy: str):
        self.strategy = strategy
        super().__init__(f"No messages found by strategy '{strategy}'")


class BuilderInfeasible(ServiceError):
    """A puzzle builder found no usable content even after every fallback."""

    def __init__(self, game: str, attempts: int):
        self.game = game
        self.attempts = attempts
        super().__init__(f"Could not build '{game}' after {attempts} attempt(s)")


class IngestionError(ServiceError):
    """The storage service rejected or failed to receive a payload."""

    def __init__(self, path: str, status_code: int | None = None, detail: str = ""):
        self.path = path
        self.status_code = status_code
        self.detail = detail
        message = f"POST {path} failed"
        if status_code is not None:
            message = f"{message} with HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
