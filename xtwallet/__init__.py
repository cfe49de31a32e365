"""xtwallet - cross-context request/notification bus for the XT wallet extension."""

__version__ = "0.1.0"
__logo__ = "🦩"
