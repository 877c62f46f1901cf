"""
Book Viewer - Real-time two-sided order book for a single futures instrument.

Architecture:
- datafeed/: WebSocket session, subscriptions, message codec, book store
- engine/: Update throttling between the book and its consumers
- ui/: Price ladder view (Textual TUI)
"""

__version__ = "0.1.0"
