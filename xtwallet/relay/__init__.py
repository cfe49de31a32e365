"""Page-facing relay."""

from xtwallet.relay.content import ContentRelay
from xtwallet.relay.window import PageWindow, WindowMessageEvent

__all__ = ["ContentRelay", "PageWindow", "WindowMessageEvent"]
