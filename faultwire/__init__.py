"""faultwire - error reporting client."""

__version__ = "0.1.0"

from .config import Configuration, Settings
from .errors import (
    DeliveryError,
    FaultwireError,
    MissingErrorError,
    NotifyCancelled,
    NotifyError,
    ReleaseStageSuppressed,
)
from .notifier import (
    Notifier,
    auto_notify,
    configure,
    get_notifier,
    notify,
    on_before_notify,
    recover,
    reset_notifier,
)
from .pipeline.middleware import MiddlewareStack
from .report.context import ExecutionContext, Session, attach_request_body, start_session
from .report.event import Event
from .report.models import (
    ErrorClass,
    ErrorContext,
    HandledState,
    MetaData,
    Severity,
    SeverityReason,
    StackFrame,
    User,
)

__all__ = [
    "Configuration",
    "DeliveryError",
    "ErrorClass",
    "ErrorContext",
    "Event",
    "ExecutionContext",
    "FaultwireError",
    "HandledState",
    "MetaData",
    "MiddlewareStack",
    "MissingErrorError",
    "Notifier",
    "NotifyCancelled",
    "NotifyError",
    "ReleaseStageSuppressed",
    "Session",
    "Settings",
    "Severity",
    "SeverityReason",
    "StackFrame",
    "User",
    "attach_request_body",
    "auto_notify",
    "configure",
    "get_notifier",
    "notify",
    "on_before_notify",
    "recover",
    "reset_notifier",
    "start_session",
]
