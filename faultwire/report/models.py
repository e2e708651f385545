"""Value types used to enrich a report."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Report severity levels."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class SeverityReason(str, Enum):
    """Why a report has the severity it has."""

    UNHANDLED_ERROR = "unhandledError"
    UNHANDLED_PANIC = "unhandledPanic"
    HANDLED_ERROR = "handledError"
    HANDLED_PANIC = "handledPanic"
    USER_SPECIFIED = "userSpecifiedSeverity"
    CALLBACK_SPECIFIED = "userCallbackSetSeverity"
    UNHANDLED_MIDDLEWARE_ERROR = "unhandledErrorMiddleware"


@dataclass
class HandledState:
    """
    Handled state of a report.

    original_severity is the severity the report had before any callback or
    hook touched it.
    """

    severity_reason: SeverityReason
    original_severity: Optional[Severity]
    unhandled: bool = False
    framework: str = ""


@dataclass
class User:
    """User affected by the error."""

    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class ErrorClass:
    """Overrides the error class shown for a report."""

    name: str


@dataclass(frozen=True)
class ErrorContext:
    """Free-form context for a report, usually the route or job name."""

    value: str


@dataclass
class StackFrame:
    """Single frame of a reported stack trace."""

    method: str
    file: str
    line_number: int
    in_project: bool = False


class MetaData(Dict[str, Dict[str, Any]]):
    """
    Report metadata, grouped into tabs.

    Each key is a tab name mapping to a dict of values. update() merges tab
    by tab instead of replacing whole tabs.
    """

    def update(self, other=(), **kwargs) -> None:  # type: ignore[override]
        merged = dict(other, **kwargs)
        for tab, values in merged.items():
            if not isinstance(values, dict):
                values = {"value": values}
            existing = self.get(tab)
            if isinstance(existing, dict):
                existing.update(values)
            else:
                self[tab] = dict(values)

    def add(self, tab: str, key: str, value: Any) -> None:
        """Add a single value to a tab, creating the tab if needed."""
        self.setdefault(tab, {})[key] = value
