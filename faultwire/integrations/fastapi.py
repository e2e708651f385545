"""FastAPI / Starlette integration."""

from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..notifier import Notifier, get_notifier
from ..report.context import ExecutionContext
from ..report.models import HandledState, Severity, SeverityReason

FRAMEWORK = "FastAPI"


class FaultwireMiddleware(BaseHTTPMiddleware):
    """
    Report unhandled request errors.

    Exceptions escaping a route are reported as unhandled, with the request,
    its query parameters and its body attached, and then re-raised so the
    framework's own error handling still runs. Reporting happens in the
    threadpool so a synchronous delivery never blocks the event loop.
    """

    def __init__(self, app, notifier: Optional[Notifier] = None):
        super().__init__(app)
        self.notifier = notifier

    async def dispatch(self, request: Request, call_next):
        notifier = self.notifier or get_notifier()

        body = await _read_body(request, notifier.config.max_request_body_size)
        ctx = ExecutionContext(request=request, body=body)
        request.state.faultwire_context = ctx

        try:
            return await call_next(request)
        except Exception as exc:
            state = HandledState(
                SeverityReason.UNHANDLED_MIDDLEWARE_ERROR,
                Severity.ERROR,
                unhandled=True,
                framework=FRAMEWORK,
            )
            await run_in_threadpool(notifier.notify_unhandled, exc, ctx, state)
            raise


async def _read_body(request: Request, max_size: int) -> Optional[bytes]:
    """
    Read the request body if it is small enough to attach to a report.

    Only bodies with a declared Content-Length within max_size are read, so
    large or streamed uploads are never buffered here.
    """
    content_length = request.headers.get("content-length")
    if not content_length:
        return None

    try:
        if int(content_length) > max_size:
            return None
    except ValueError:
        return None

    return await request.body() or None


def get_execution_context(request: Request) -> ExecutionContext:
    """
    Get the execution context for a request.

    Pass it to notify() from a route handler to attach request details to a
    handled error.
    """
    ctx = getattr(request.state, "faultwire_context", None)
    if ctx is None:
        ctx = ExecutionContext(request=request)
    return ctx
