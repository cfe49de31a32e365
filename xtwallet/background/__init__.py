"""Privileged context: request dispatch, confirmations and notifications."""

from xtwallet.background.capabilities import CapabilitySet
from xtwallet.background.confirmations import ConfirmationDeclined, request_confirmation
from xtwallet.background.dispatcher import Dispatcher
from xtwallet.background.notifications import (
    notify_account_changed,
    notify_account_removed,
    notify_network_changed,
    notify_permission_removed,
    notify_state_updated,
)

__all__ = [
    "CapabilitySet",
    "Dispatcher",
    "ConfirmationDeclined",
    "request_confirmation",
    "notify_network_changed",
    "notify_permission_removed",
    "notify_account_changed",
    "notify_account_removed",
    "notify_state_updated",
]
