"""
Exception taxonomy for Book Viewer.

None of these are fatal: the engine degrades to a stale-but-consistent book
rather than crashing.
"""

from __future__ import annotations


class BookViewerError(Exception):
    """Base class for all Book Viewer errors."""


class MalformedMessage(BookViewerError):
    """Frame is not valid JSON or lacks the fields needed to classify it."""

    def __init__(self, reason: str, raw: str | bytes | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class InvalidLevel(BookViewerError):
    """A (price, size) pair violates numeric constraints."""

    def __init__(self, reason: str, level: object = None) -> None:
        super().__init__(f"{reason}: {level!r}")
        self.reason = reason
        self.level = level


class NotConnected(BookViewerError):
    """Send attempted while the session is not open."""


class ConnectionLost(BookViewerError):
    """Connection dropped without an intentional close."""

    def __init__(self, url: str, cause: BaseException | None = None) -> None:
        message = f"connection to {url} lost"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.url = url
        self.cause = cause


class InvalidTransition(BookViewerError):
    """Session state machine asked to make a transition it does not allow."""

    def __init__(self, current: object, target: object) -> None:
        super().__init__(f"illegal session transition {current} -> {target}")
        self.current = current
        self.target = target
