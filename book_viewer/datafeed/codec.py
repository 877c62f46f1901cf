"""
Wire codec for the book feed.

Incoming frames are classified into control messages (info/error/
subscribed/unsubscribed) and data messages (snapshot/update). Outgoing
subscribe/unsubscribe commands are encoded here too.

HOT PATH: decode() runs once per incoming frame. Only shape is checked
here; per-level numeric validation belongs to the book store so that one
bad pair drops only that level.
"""

from __future__ import annotations

from typing import Any

import orjson

from ..errors import MalformedMessage
from ..types import ControlMessage, DataMessage, Subscription

SNAPSHOT = "snapshot"
UPDATE = "update"

CONTROL_EVENTS = frozenset({"info", "error", "subscribed", "unsubscribed"})

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"

SNAPSHOT_SUFFIX = "_snapshot"


class FeedCodec:
    """Decodes frames for one named feed, e.g. "book_ui_1"."""

    __slots__ = ("feed", "snapshot_feed")

    def __init__(self, feed: str) -> None:
        self.feed = feed
        self.snapshot_feed = f"{feed}{SNAPSHOT_SUFFIX}"

    def decode(self, raw: str | bytes) -> DataMessage | ControlMessage:
        """
        Classify one frame.

        Raises MalformedMessage if the frame is not a JSON object or carries
        neither an "event" nor a "feed" discriminator.
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise MalformedMessage(f"invalid JSON: {exc}", raw) from exc

        if not isinstance(data, dict):
            raise MalformedMessage("frame is not an object", raw)

        event = data.get("event")
        feed = data.get("feed")

        if event is not None:
            if event in CONTROL_EVENTS:
                return ControlMessage(event, feed, data.get("message"), data)
            return ControlMessage("error", feed, f"unexpected event {event!r}", data)

        if feed is None:
            raise MalformedMessage("missing 'event' and 'feed'", raw)

        if feed == self.snapshot_feed:
            return DataMessage(
                SNAPSHOT,
                self.feed,
                _levels(data, "bids", raw, required=True),
                _levels(data, "asks", raw, required=True),
                data.get("product_id"),
            )

        if feed == self.feed:
            return DataMessage(
                UPDATE,
                self.feed,
                _levels(data, "bids", raw, required=False),
                _levels(data, "asks", raw, required=False),
                data.get("product_id"),
            )

        return ControlMessage("error", feed, f"unexpected feed {feed!r}", data)


def _levels(data: dict[str, Any], key: str, raw: str | bytes, *, required: bool) -> list[Any]:
    levels = data.get(key)
    if levels is None:
        if required:
            raise MalformedMessage(f"snapshot missing {key!r}", raw)
        return []
    if not isinstance(levels, list):
        raise MalformedMessage(f"{key!r} is not an array", raw)
    return levels


def build_command(event: str, subscription: Subscription) -> dict[str, Any]:
    """Outgoing subscribe/unsubscribe payload."""
    if event not in (SUBSCRIBE, UNSUBSCRIBE):
        raise ValueError(f"unknown command event {event!r}")
    return {
        "event": event,
        "feed": subscription.feed,
        "product_ids": [subscription.instrument],
    }


def encode_command(event: str, subscription: Subscription) -> str:
    return orjson.dumps(build_command(event, subscription)).decode()
