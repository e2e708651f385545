"""Request-scoped execution context carried alongside a report."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional

from starlette.requests import Request


@dataclass
class Session:
    """A started session and the number of events reported within it."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    handled: int = 0
    unhandled: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record(self, unhandled: bool) -> None:
        """Count one reported event against this session."""
        with self._lock:
            if unhandled:
                self.unhandled += 1
            else:
                self.handled += 1


@dataclass
class ExecutionContext:
    """
    Carrier for request-scoped data.

    Pass one as raw data to notify() so middleware can read the request,
    the raw request body and the active session.
    """

    request: Optional[Request] = None
    body: Optional[bytes] = None
    session: Optional[Session] = None
    values: Dict[str, Any] = field(default_factory=dict)


def attach_request_body(ctx: Optional[ExecutionContext], body: bytes) -> ExecutionContext:
    """Return a copy of ctx carrying the given request body."""
    if ctx is None:
        return ExecutionContext(body=body)
    return replace(ctx, body=body)


def start_session(ctx: Optional[ExecutionContext] = None) -> ExecutionContext:
    """Return a copy of ctx with a newly started session attached."""
    if ctx is None:
        return ExecutionContext(session=Session())
    return replace(ctx, session=Session())
