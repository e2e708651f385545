"""Report event model and raw data classification."""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional, Sequence, Tuple

import structlog
from starlette.requests import Request

from ..config import Configuration
from .context import ExecutionContext, Session
from .models import (
    ErrorClass,
    ErrorContext,
    HandledState,
    MetaData,
    Severity,
    SeverityReason,
    StackFrame,
    User,
)
from .stacktrace import extract_stacktrace

logger = structlog.get_logger(__name__)


@dataclass
class Event:
    """
    A single error report in flight.

    Built once per notify call from raw data, then handed to the middleware
    stack, which may change any field before delivery.
    """

    error: Optional[BaseException] = None
    error_class: str = ""
    message: str = ""
    stacktrace: List[StackFrame] = field(default_factory=list)
    context: str = ""
    severity: Optional[Severity] = None
    grouping_hash: str = ""
    user: Optional[User] = None
    meta_data: MetaData = field(default_factory=MetaData)
    ctx: Optional[ExecutionContext] = None
    handled_state: HandledState = field(
        default_factory=lambda: HandledState(SeverityReason.HANDLED_ERROR, Severity.WARNING)
    )
    raw_data: List[Any] = field(default_factory=list)

    @property
    def unhandled(self) -> bool:
        """Whether the reported error escaped the application."""
        return self.handled_state.unhandled

    @property
    def session(self) -> Optional[Session]:
        """Session active when the event was reported, if one was started."""
        if self.ctx is None:
            return None
        return self.ctx.session


def coerce_error(value: Any) -> BaseException:
    if isinstance(value, BaseException):
        return value
    return RuntimeError(str(value))


def _populate_from_request(event: Event, request: Request) -> None:
    """Copy request details into the event."""
    event.context = request.url.path

    client_ip = request.client.host if request.client else None
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()

    event.meta_data.update({
        "request": {
            "url": str(request.url),
            "httpMethod": request.method,
            "headers": dict(request.headers),
            "clientIp": client_ip,
        }
    })

    if client_ip:
        if event.user is None:
            event.user = User(id=client_ip)
        elif not event.user.id:
            event.user.id = client_ip


def build_event(
    raw_data: Sequence[Any],
    config: Configuration,
) -> Tuple[Event, Configuration]:
    """
    Build an event from untyped raw data.

    Raw data is classified by type. Recognised values enrich the event or
    the per-call configuration; everything else is kept in event.raw_data
    for middleware to inspect.

    Args:
        raw_data: Values passed to notify plus the notifier's own raw data
        config: Notifier configuration

    Returns:
        Tuple of (Event, per-call Configuration)
    """
    event = Event(
        severity=Severity.WARNING,
        raw_data=list(raw_data),
    )
    call_config = config
    error: Optional[BaseException] = None
    explicit_severity: Optional[Severity] = None
    explicit_state: Optional[HandledState] = None
    explicit_class: Optional[str] = None
    requests: List[Request] = []
    callbacks: List[Callable[[Event], Any]] = []

    for datum in event.raw_data:
        if datum is None:
            continue
        if isinstance(datum, BaseException):
            error = datum
        elif isinstance(datum, bool):
            call_config = call_config.merge(Configuration(synchronous=datum))
        elif isinstance(datum, Severity):
            explicit_severity = datum
        elif isinstance(datum, HandledState):
            explicit_state = datum
        elif isinstance(datum, ErrorContext):
            event.context = datum.value
        elif isinstance(datum, ExecutionContext):
            event.ctx = datum
            if datum.request is not None:
                requests.append(datum.request)
        elif isinstance(datum, Request):
            requests.append(datum)
        elif isinstance(datum, Configuration):
            call_config = call_config.merge(datum)
        elif isinstance(datum, User):
            event.user = datum
        elif isinstance(datum, ErrorClass):
            explicit_class = datum.name
        elif isinstance(datum, dict):
            event.meta_data.update(datum)
        elif callable(datum) and not isinstance(datum, type):
            callbacks.append(datum)

    for request in requests:
        _populate_from_request(event, request)

    if error is not None:
        event.error = error
        event.error_class = type(error).__name__
        event.message = str(error)
        event.stacktrace = extract_stacktrace(
            error,
            project_packages=call_config.project_packages,
            source_root=call_config.source_root,
        )
    if explicit_class:
        event.error_class = explicit_class

    if explicit_state is not None:
        event.handled_state = replace(explicit_state)
        event.severity = explicit_state.original_severity

    if explicit_severity is not None:
        if explicit_state is None or explicit_state.original_severity != explicit_severity:
            event.handled_state.severity_reason = SeverityReason.USER_SPECIFIED
        event.severity = explicit_severity

    for callback in callbacks:
        severity = event.severity
        try:
            callback(event)
        except Exception as e:
            logger.warning("notify_callback_failed", callback=repr(callback), error=str(e))
            continue
        if event.severity != severity:
            event.handled_state.severity_reason = SeverityReason.CALLBACK_SPECIFIED

    return event, call_config

