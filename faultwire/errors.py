"""Error types returned by the notifier.

Nothing in the notify path raises these at the caller. They are returned so
that reporting can never take the host application down with it.
"""

from typing import Optional


class FaultwireError(Exception):
    """Base class for all faultwire errors."""


class NotifyError(FaultwireError):
    """A notification was not sent."""


class MissingErrorError(NotifyError):
    """notify() was called without an error."""

    def __init__(self):
        super().__init__("attempted to notify without supplying an error, not notified")


class ReleaseStageSuppressed(NotifyError):
    """The configured release stage is not one that should notify."""

    def __init__(self, release_stage: str):
        super().__init__(f"not notifying in {release_stage}")
        self.release_stage = release_stage


class NotifyCancelled(NotifyError):
    """A before-notify hook cancelled the notification."""


class DeliveryError(FaultwireError):
    """The payload could not be serialized or transmitted."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
