"""Before-notify middleware stack and the built-in request hooks."""

from threading import Lock
from typing import Any, Callable, Iterator, List, Optional

import orjson
from starlette.requests import Request

from ..config import Configuration
from ..errors import NotifyCancelled
from ..report.context import ExecutionContext
from ..report.event import Event
from ..report.models import SeverityReason

# A hook may return None/True to continue, False to cancel, or an exception
# instance to stop the chain with that error.
BeforeNotify = Callable[[Event, Configuration], Any]


class MiddlewareStack:
    """
    Ordered list of before-notify hooks.

    Hooks run in reverse registration order: the hook added last runs first,
    so it sees the event before everything registered earlier.

    Register hooks during startup. run() works on a snapshot, so concurrent
    notify calls never observe a half-registered hook list.
    """

    def __init__(self, hooks: Optional[List[BeforeNotify]] = None):
        self._hooks: List[BeforeNotify] = list(hooks or [])
        self._lock = Lock()

    @classmethod
    def with_defaults(cls) -> "MiddlewareStack":
        """Create a stack with the built-in request hooks registered."""
        return cls([http_request_middleware, request_body_middleware])

    def on_before_notify(self, hook: BeforeNotify) -> None:
        """Register a hook. It runs before every hook registered so far."""
        with self._lock:
            self._hooks.append(hook)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hooks)

    def run(
        self,
        event: Event,
        config: Configuration,
        next_step: Callable[[], Optional[BaseException]],
    ) -> Optional[BaseException]:
        """
        Run every hook once, then the next step.

        Args:
            event: Event to pass through the hooks
            config: Per-call configuration
            next_step: Delivery step, called only if every hook lets it through

        Returns:
            The error that stopped the chain, or whatever next_step returned
        """
        with self._lock:
            hooks = list(self._hooks)

        for hook in reversed(hooks):
            severity = event.severity
            result = self._run_hook(hook, event, config)

            if result is False:
                return NotifyCancelled(f"cancelled by before-notify hook {_hook_name(hook)}")
            if isinstance(result, BaseException):
                return result

            if event.severity != severity:
                event.handled_state.severity_reason = SeverityReason.CALLBACK_SPECIFIED

        return next_step()

    def _run_hook(self, hook: BeforeNotify, event: Event, config: Configuration) -> Any:
        """Run one hook. A hook that raises is logged and counts as passing."""
        try:
            return hook(event, config)
        except Exception as e:
            config.logger.warning(
                "middleware_hook_failed",
                hook=_hook_name(hook),
                error=str(e),
            )
            return None


def _hook_name(hook: Callable) -> str:
    return getattr(hook, "__qualname__", None) or repr(hook)


def _requests_in(raw_data: List[Any]) -> Iterator[Request]:
    for datum in raw_data:
        if isinstance(datum, Request):
            yield datum
        elif isinstance(datum, ExecutionContext) and datum.request is not None:
            yield datum.request


def http_request_middleware(event: Event, config: Configuration) -> None:
    """
    Add query parameters of any request in the raw data to the event.

    Parameters land in the "request" tab under "params", each key mapping to
    the list of its values.
    """
    for request in _requests_in(event.raw_data):
        params = request.query_params
        event.meta_data.update({
            "request": {
                "params": {key: params.getlist(key) for key in params.keys()},
            }
        })


def request_body_middleware(event: Event, config: Configuration) -> None:
    """
    Add the request body carried by an ExecutionContext to the event.

    The body is decoded as JSON when possible and sent as text otherwise.
    """
    for datum in event.raw_data:
        if not isinstance(datum, ExecutionContext) or datum.body is None:
            continue

        try:
            body: Any = orjson.loads(datum.body)
        except orjson.JSONDecodeError:
            body = datum.body.decode("utf-8", errors="replace")

        event.meta_data.update({"request": {"body": body}})
