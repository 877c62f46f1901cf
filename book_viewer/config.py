"""Configuration via environment variables with BOOK_VIEWER_ prefix."""

from pydantic import Field
from pydantic_settings import BaseSettings

from .types import DEFAULT_DEPTH


class Settings(BaseSettings):
    model_config = {"env_prefix": "BOOK_VIEWER_"}

    # WebSocket
    ws_url: str = "wss://www.cryptofacilities.com/ws/v1"
    heartbeat: float = 30.0
    reconnect: bool = True
    reconnect_delay: float = Field(default=0.5, ge=0)
    reconnect_max_delay: float = Field(default=30.0, ge=0)

    # Subscription
    feed: str = "book_ui_1"
    instruments: list[str] = Field(default=["PI_XBTUSD", "PI_ETHUSD"], min_length=1)

    # Book
    depth: int = Field(default=DEFAULT_DEPTH, ge=1)

    # Consumer notification (0 = notify on every change)
    throttle_ms: int = Field(default=100, ge=0)
    snapshot_queue_size: int = Field(default=5, ge=1)

    # Logging
    log_level: str = "INFO"
