"""Tests for event building and raw data classification."""

import pytest
from starlette.requests import Request

from faultwire import (
    Configuration,
    ErrorClass,
    ErrorContext,
    ExecutionContext,
    HandledState,
    MetaData,
    Session,
    Severity,
    SeverityReason,
    User,
    attach_request_body,
    start_session,
)
from faultwire.report.event import build_event, coerce_error
from faultwire.report.stacktrace import extract_stacktrace, is_project_module


def make_request(path="/api/v2/albums", query_string=b"", headers=None):
    """Build a Starlette request without a server."""
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("203.0.113.7", 51000),
        "path": path,
        "query_string": query_string,
        "headers": headers or [(b"user-agent", b"pytest")],
    }
    return Request(scope)


def raise_and_catch(exc):
    try:
        raise exc
    except Exception as e:
        return e


class TestBuildEvent:
    """Test cases for build_event."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = Configuration(api_key="abc123")

    def test_defaults(self):
        """Test a plain error gets warning severity and handled state."""
        error = ValueError("invalid value")
        event, config = build_event([error], self.config)

        assert event.error is error
        assert event.error_class == "ValueError"
        assert event.message == "invalid value"
        assert event.severity == Severity.WARNING
        assert event.handled_state.severity_reason == SeverityReason.HANDLED_ERROR
        assert event.unhandled is False
        assert config.api_key == "abc123"

    def test_raw_data_is_kept(self):
        """Test that unrecognised raw data is carried on the event."""
        marker = object()
        event, _ = build_event([ValueError("x"), marker, "text"], self.config)

        assert marker in event.raw_data
        assert "text" in event.raw_data

    def test_explicit_severity(self):
        """Test an explicit severity is used and marked user specified."""
        event, _ = build_event([ValueError("x"), Severity.INFO], self.config)

        assert event.severity == Severity.INFO
        assert event.handled_state.severity_reason == SeverityReason.USER_SPECIFIED

    def test_handled_state_sets_severity(self):
        """Test a handled state brings its original severity along."""
        state = HandledState(SeverityReason.HANDLED_PANIC, Severity.ERROR, unhandled=True)
        event, _ = build_event([ValueError("x"), state], self.config)

        assert event.severity == Severity.ERROR
        assert event.unhandled is True
        assert event.handled_state.severity_reason == SeverityReason.HANDLED_PANIC

    @pytest.mark.parametrize("severity", list(Severity))
    def test_explicit_severity_beats_handled_state(self, severity):
        """Test an explicit severity wins whatever the handled state says."""
        state = HandledState(SeverityReason.UNHANDLED_ERROR, Severity.ERROR, unhandled=True)

        event, _ = build_event([severity, ValueError("x"), state], self.config)
        assert event.severity == severity

        event, _ = build_event([state, ValueError("x"), severity], self.config)
        assert event.severity == severity

    def test_handled_state_is_copied(self):
        """Test the caller's handled state is never modified."""
        state = HandledState(SeverityReason.HANDLED_PANIC, Severity.ERROR)
        build_event([ValueError("x"), state, Severity.INFO], self.config)

        assert state.severity_reason == SeverityReason.HANDLED_PANIC

    def test_bool_overrides_synchronous(self):
        """Test a bool in raw data sets the synchronous flag for the call."""
        _, config = build_event([ValueError("x"), True], self.config)

        assert config.synchronous is True
        assert self.config.synchronous is False

    def test_configuration_override(self):
        """Test a partial configuration is merged for the call only."""
        _, config = build_event(
            [ValueError("x"), Configuration(release_stage="staging")],
            self.config,
        )

        assert config.release_stage == "staging"
        assert config.api_key == "abc123"
        assert self.config.release_stage == "production"

    def test_enrichment_types(self):
        """Test context, user, error class and metadata raw data."""
        user = User(id="1234", name="Jo", email="jo@example.com")
        event, _ = build_event(
            [
                ValueError("x"),
                ErrorContext("checkout"),
                user,
                ErrorClass("PaymentError"),
                MetaData({"order": {"id": 42}}),
                {"order": {"total": 10}},
            ],
            self.config,
        )

        assert event.context == "checkout"
        assert event.user is user
        assert event.error_class == "PaymentError"
        assert event.meta_data == {"order": {"id": 42, "total": 10}}

    def test_request_populates_event(self):
        """Test a request fills context, request metadata and user id."""
        request = make_request(query_string=b"page=2")
        event, _ = build_event([ValueError("x"), request], self.config)

        assert event.context == "/api/v2/albums"
        assert event.meta_data["request"]["httpMethod"] == "GET"
        assert event.meta_data["request"]["url"] == "http://testserver/api/v2/albums?page=2"
        assert event.meta_data["request"]["clientIp"] == "203.0.113.7"
        assert event.meta_data["request"]["headers"]["user-agent"] == "pytest"
        assert event.user.id == "203.0.113.7"

    def test_request_keeps_explicit_user(self):
        """Test a known user id is not replaced by the client IP."""
        event, _ = build_event([ValueError("x"), User(id="u1"), make_request()], self.config)
        assert event.user.id == "u1"

    def test_execution_context(self):
        """Test an execution context is attached and its request used."""
        ctx = ExecutionContext(request=make_request(path="/jobs"))
        event, _ = build_event([ValueError("x"), ctx], self.config)

        assert event.ctx is ctx
        assert event.context == "/jobs"
        assert event.session is None

    def test_callback_changes_severity(self):
        """Test a callback in raw data can change the event."""
        def callback(event):
            event.severity = Severity.ERROR
            event.grouping_hash = "group-1"

        event, _ = build_event([ValueError("x"), callback], self.config)

        assert event.severity == Severity.ERROR
        assert event.grouping_hash == "group-1"
        assert event.handled_state.severity_reason == SeverityReason.CALLBACK_SPECIFIED

    def test_failing_callback_is_ignored(self):
        """Test a callback that raises does not break event building."""
        def callback(event):
            raise RuntimeError("broken callback")

        event, _ = build_event([ValueError("x"), callback], self.config)

        assert event.error_class == "ValueError"
        assert event.handled_state.severity_reason == SeverityReason.HANDLED_ERROR

    def test_classes_are_not_callbacks(self):
        """Test a class in raw data is carried along, not called with the event."""
        event, _ = build_event([ValueError("x"), KeyError, User], self.config)

        assert event.error_class == "ValueError"
        assert event.user is None
        assert KeyError in event.raw_data
        assert User in event.raw_data

    def test_callable_instance_is_callback(self):
        """Test callable objects other than functions still run as callbacks."""
        class Tagger:
            def __call__(self, event):
                event.grouping_hash = "tagged"

        event, _ = build_event([ValueError("x"), Tagger()], self.config)

        assert event.grouping_hash == "tagged"

    def test_coerce_error(self):
        """Test non-exception values are wrapped."""
        error = ValueError("x")
        assert coerce_error(error) is error

        wrapped = coerce_error("boom")
        assert isinstance(wrapped, RuntimeError)
        assert str(wrapped) == "boom"


class TestMetaData:
    """Test cases for MetaData."""

    def test_update_merges_tabs(self):
        """Test update merges values into existing tabs."""
        meta = MetaData({"request": {"params": {"a": ["1"]}}})
        meta.update({"request": {"body": "text"}, "custom": {"key": "value"}})

        assert meta == {
            "request": {"params": {"a": ["1"]}, "body": "text"},
            "custom": {"key": "value"},
        }

    def test_add(self):
        """Test adding single values."""
        meta = MetaData()
        meta.add("custom tab", "my key", "my value")
        meta.add("custom tab", "other", 1)

        assert meta == {"custom tab": {"my key": "my value", "other": 1}}


class TestStacktrace:
    """Test cases for stack trace extraction."""

    def test_raised_error_uses_traceback(self):
        """Test frames come from the traceback, innermost first."""
        error = raise_and_catch(ValueError("x"))
        frames = extract_stacktrace(error, project_packages=["test_*"])

        assert frames[0].method.endswith("raise_and_catch")
        assert frames[0].in_project is True
        assert frames[0].file.endswith("test_event.py")

    def test_unraised_error_uses_current_stack(self):
        """Test errors without a traceback get the caller's stack."""
        frames = extract_stacktrace(ValueError("x"))

        assert frames
        assert frames[0].method.endswith("test_unraised_error_uses_current_stack")
        assert not any(f.file.endswith("stacktrace.py") for f in frames)

    def test_source_root_is_stripped(self):
        """Test file names are made relative to the source root."""
        import os

        error = raise_and_catch(ValueError("x"))
        root = os.path.dirname(os.path.abspath(__file__))
        frames = extract_stacktrace(error, source_root=root)

        assert frames[0].file == "test_event.py"

    def test_is_project_module(self):
        """Test project package pattern matching."""
        assert is_project_module("myapp.views", ["myapp*"])
        assert is_project_module("__main__", ["__main__*"])
        assert not is_project_module("requests.api", ["myapp*"])


class TestExecutionContext:
    """Test cases for execution contexts and sessions."""

    def test_attach_request_body(self):
        """Test attaching a body returns a copy."""
        ctx = ExecutionContext(values={"job": "sync"})
        with_body = attach_request_body(ctx, b"payload")

        assert with_body.body == b"payload"
        assert with_body.values == {"job": "sync"}
        assert ctx.body is None
        assert attach_request_body(None, b"x").body == b"x"

    def test_start_session(self):
        """Test starting a session returns a copy with a fresh session."""
        ctx = ExecutionContext(request=make_request())
        started = start_session(ctx)

        assert started.session is not None
        assert started.request is ctx.request
        assert ctx.session is None
        assert start_session().session.id != started.session.id

    def test_session_record(self):
        """Test sessions count handled and unhandled events."""
        session = Session()
        session.record(unhandled=False)
        session.record(unhandled=True)
        session.record(unhandled=True)

        assert session.handled == 1
        assert session.unhandled == 2
