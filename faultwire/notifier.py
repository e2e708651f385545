"""Notifier: capture errors, run middleware and dispatch delivery."""

from concurrent.futures import Executor
from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator, List, Optional, Sequence

import structlog

from .config import Configuration, Settings
from .delivery.transport import Delivery, HttpDelivery, get_executor
from .errors import DeliveryError, MissingErrorError, NotifyError, ReleaseStageSuppressed
from .pipeline.middleware import BeforeNotify, MiddlewareStack
from .report.event import Event, build_event, coerce_error
from .report.models import HandledState, Severity, SeverityReason

logger = structlog.get_logger(__name__)

# Lock for thread-safe default notifier initialization
_notifier_lock = Lock()


class Notifier:
    """
    Sends error reports.

    Orchestrates: build event -> middleware -> release stage gate -> delivery.
    Nothing in the notify path raises into the caller. Errors are logged and
    returned instead.
    """

    def __init__(
        self,
        *raw_data: Any,
        config: Optional[Configuration] = None,
        middleware: Optional[MiddlewareStack] = None,
        delivery: Optional[Delivery] = None,
        executor: Optional[Executor] = None,
        session_tracker: Optional[Any] = None,
    ):
        """
        Initialize notifier.

        Args:
            *raw_data: Values sent with every report. Configuration instances
                among them are merged into the notifier's configuration
            config: Base configuration (defaults to Configuration())
            middleware: Before-notify hooks (defaults to the built-in hooks)
            delivery: Delivery implementation (defaults to HttpDelivery)
            executor: Executor for asynchronous deliveries (defaults to the
                shared thread pool)
            session_tracker: Object with a flush() method, flushed before
                auto_notify re-raises
        """
        merged = (config or Configuration()).clone()
        kept: List[Any] = []
        for datum in raw_data:
            if isinstance(datum, Configuration):
                merged = merged.merge(datum)
            else:
                kept.append(datum)

        self.config = merged
        self.raw_data = kept
        self.middleware = middleware if middleware is not None else MiddlewareStack.with_defaults()
        self.delivery = delivery if delivery is not None else HttpDelivery()
        self.executor = executor
        self.session_tracker = session_tracker

    def on_before_notify(self, hook: BeforeNotify) -> None:
        """Register a before-notify hook on this notifier's middleware stack."""
        self.middleware.on_before_notify(hook)

    def flush_sessions_on_repanic(self, should_flush: bool) -> None:
        """
        Choose whether sessions are flushed when auto_notify re-raises.

        Defaults to True. Turn it off when a framework error handler already
        survives the exception and sessions can go out later.
        """
        self.config.flush_sessions_on_repanic = should_flush

    def notify(self, err: Optional[BaseException], *raw_data: Any) -> Optional[BaseException]:
        """
        Report an error.

        Any raw data is used to enrich the report (Severity, User, MetaData,
        ErrorContext, a Request...). A bool, or a Configuration setting
        synchronous, among it overrides the configured synchronous flag.

        Returns:
            None on success (or once dispatched, when asynchronous), otherwise
            the error that prevented the report
        """
        return self.notify_sync(err, self._call_synchronous(raw_data), *raw_data)

    def notify_sync(
        self,
        err: Optional[BaseException],
        sync: bool,
        *raw_data: Any,
    ) -> Optional[BaseException]:
        """
        Report an error, choosing whether to deliver in the current thread.

        Args:
            err: Error to report
            sync: Deliver inline when True, in the background when False.
                Takes precedence over any synchronous setting in raw_data
            *raw_data: Extra data to enrich the report

        Returns:
            None on success, otherwise the error that prevented the report
        """
        if err is None:
            error = MissingErrorError()
            self.config.logger.error("notify_without_error", error=str(error))
            return error

        config = self.config
        try:
            event, config = build_event(
                [*self.raw_data, *raw_data, coerce_error(err), sync],
                self.config,
            )
            error = self.middleware.run(event, config, lambda: self._deliver(event, config))
        except Exception as e:
            config.logger.error("notify_internal_error", error=str(e), exc_info=True)
            return e

        if error is not None:
            if isinstance(error, NotifyError):
                config.logger.info("notify_skipped", reason=str(error))
            else:
                config.logger.error("notify_failed", error=str(error))
        return error

    def _deliver(self, event: Event, config: Configuration) -> Optional[BaseException]:
        """Delivery step run after all middleware has passed."""
        config.logger.debug("notifying", error_class=event.error_class, message=event.message)

        if not config.notify_in_release_stage():
            return ReleaseStageSuppressed(config.release_stage)

        if event.session is not None:
            event.session.record(event.unhandled)

        if config.synchronous:
            try:
                self.delivery.deliver(event, config)
            except Exception as e:
                return e
            return None

        executor = self.executor or get_executor()
        try:
            executor.submit(self._deliver_in_background, event, config)
        except RuntimeError as e:
            return DeliveryError(f"unable to schedule delivery: {e}")
        return None

    def _deliver_in_background(self, event: Event, config: Configuration) -> None:
        """Deliver on a worker thread. Failures are only logged."""
        try:
            self.delivery.deliver(event, config)
        except Exception as e:
            config.logger.error("delivery_failed", error=str(e), error_class=event.error_class)

    @contextmanager
    def auto_notify(self, *raw_data: Any) -> Iterator[None]:
        """
        Report any exception escaping the block, then re-raise it.

        Usage:
            with notifier.auto_notify():
                crashy_code()

        Also works as a decorator. Reports default to severity error and are
        marked unhandled.
        """
        try:
            yield
        except Exception as exc:
            self.notify_unhandled(exc, *raw_data)
            raise

    def notify_unhandled(self, exc: BaseException, *raw_data: Any) -> Optional[BaseException]:
        """
        Report an exception that is about to be re-raised.

        This is the reporting half of auto_notify, for callers that catch and
        re-raise themselves (for instance to report from a worker thread).
        Sessions are flushed afterwards when flush_sessions_on_repanic is set.
        """
        severity = self._default_severity(raw_data, Severity.ERROR)
        state = HandledState(SeverityReason.HANDLED_PANIC, severity, unhandled=True)
        error = self.notify(exc, *self._append_state_if_needed(raw_data, state))

        if self.config.flush_sessions_on_repanic and self.session_tracker is not None:
            self._flush_sessions()
        return error

    @contextmanager
    def recover(self, *raw_data: Any) -> Iterator[None]:
        """
        Report any exception escaping the block and swallow it.

        Usage:
            with notifier.recover():
                crashy_code()

        Reports default to severity warning and are marked handled.
        """
        try:
            yield
        except Exception as exc:
            severity = self._default_severity(raw_data, Severity.WARNING)
            state = HandledState(SeverityReason.HANDLED_PANIC, severity, unhandled=False)
            self.notify(exc, *self._append_state_if_needed(raw_data, state))

    def _call_synchronous(self, raw_data: Sequence[Any]) -> bool:
        """Synchronous flag for a notify call. The last bool or Configuration setting it wins."""
        sync = self.config.synchronous
        for datum in raw_data:
            if isinstance(datum, bool):
                sync = datum
            elif isinstance(datum, Configuration) and "synchronous" in datum.model_fields_set:
                sync = datum.synchronous
        return sync

    def _flush_sessions(self) -> None:
        try:
            self.session_tracker.flush()
        except Exception as e:
            self.config.logger.error("session_flush_failed", error=str(e))

    def _default_severity(self, raw_data: Sequence[Any], fallback: Severity) -> Severity:
        """Severity given in raw data, else the original severity of a handled state, else fallback."""
        all_data = [*raw_data, *self.raw_data]

        for datum in all_data:
            if isinstance(datum, Severity):
                return datum

        for datum in all_data:
            if isinstance(datum, HandledState) and datum.original_severity is not None:
                return datum.original_severity

        return fallback

    def _append_state_if_needed(self, raw_data: Sequence[Any], state: HandledState) -> List[Any]:
        """Add state to raw data unless a handled state is already present."""
        for datum in [*self.raw_data, *raw_data]:
            if isinstance(datum, HandledState):
                return list(raw_data)
        return [*raw_data, state]


# Global notifier instance
_notifier: Optional[Notifier] = None


def configure(*raw_data: Any, **kwargs: Any) -> Notifier:
    """
    Replace the default notifier.

    Takes the same arguments as Notifier. Without a config, settings are
    read from the environment.
    """
    global _notifier

    if kwargs.get("config") is None:
        kwargs["config"] = Settings().to_configuration()

    with _notifier_lock:
        _notifier = Notifier(*raw_data, **kwargs)

    logger.info("notifier_configured", release_stage=_notifier.config.release_stage)
    return _notifier


def get_notifier() -> Notifier:
    """
    Get the default notifier.

    Thread-safe lazy initialization from environment settings.
    """
    global _notifier

    if _notifier is None:
        with _notifier_lock:
            # Double-check locking pattern
            if _notifier is None:
                _notifier = Notifier(config=Settings().to_configuration())
                logger.info("notifier_initialized", release_stage=_notifier.config.release_stage)

    return _notifier


def reset_notifier() -> None:
    """Reset the default notifier."""
    global _notifier
    with _notifier_lock:
        _notifier = None


def notify(err: Optional[BaseException], *raw_data: Any) -> Optional[BaseException]:
    """Report an error with the default notifier."""
    return get_notifier().notify(err, *raw_data)


def auto_notify(*raw_data: Any):
    """Report and re-raise exceptions with the default notifier."""
    return get_notifier().auto_notify(*raw_data)


def recover(*raw_data: Any):
    """Report and swallow exceptions with the default notifier."""
    return get_notifier().recover(*raw_data)


def on_before_notify(hook: BeforeNotify) -> None:
    """Register a hook on the default notifier."""
    get_notifier().on_before_notify(hook)
