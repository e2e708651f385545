"""Transform events into the notify API wire format."""

from typing import Any, Dict, List, Optional, Sequence

import orjson

from .. import __version__
from ..config import Configuration
from ..report.event import Event
from ..report.models import StackFrame, User

PAYLOAD_VERSION = "4"
FILTERED = "[FILTERED]"

NOTIFIER_INFO = {
    "name": "faultwire",
    "url": "https://github.com/faultwire/faultwire",
    "version": __version__,
}


class Payload:
    """
    Wire payload for one event.

    Handles field mapping, metadata filtering and JSON encoding.
    """

    def __init__(self, event: Event, config: Configuration):
        self.event = event
        self.config = config

    def to_dict(self) -> Dict[str, Any]:
        """
        Build the payload document.

        Returns:
            Payload dict ready for JSON encoding
        """
        return {
            "apiKey": self.config.api_key,
            "events": [self._transform_event()],
            "notifier": dict(NOTIFIER_INFO),
        }

    def to_json(self) -> bytes:
        """Encode the payload. Values JSON cannot represent are stringified."""
        return orjson.dumps(
            self.to_dict(),
            default=str,
            option=orjson.OPT_NON_STR_KEYS,
        )

    def _transform_event(self) -> Dict[str, Any]:
        event = self.event
        handled_state = event.handled_state

        document = {
            "app": self._transform_app(),
            "device": self._transform_device(),
            "context": event.context or None,
            "exceptions": [
                {
                    "errorClass": event.error_class,
                    "message": event.message,
                    "stacktrace": self._transform_stacktrace(event.stacktrace),
                }
            ],
            "groupingHash": event.grouping_hash or None,
            "metaData": filter_meta_data(event.meta_data, self.config.params_filters),
            "payloadVersion": PAYLOAD_VERSION,
            "session": self._transform_session(),
            "severity": event.severity.value if event.severity else "",
            "severityReason": (
                {"type": handled_state.severity_reason.value}
                if handled_state.severity_reason
                else None
            ),
            "unhandled": handled_state.unhandled,
            "user": self._transform_user(event.user),
        }

        # Omit empty optional fields
        return {k: v for k, v in document.items() if v is not None}

    def _transform_app(self) -> Dict[str, Any]:
        app = {"releaseStage": self.config.release_stage}
        if self.config.app_type:
            app["type"] = self.config.app_type
        if self.config.app_version:
            app["version"] = self.config.app_version
        return app

    def _transform_device(self) -> Dict[str, Any]:
        if self.config.hostname:
            return {"hostname": self.config.hostname}
        return {}

    def _transform_stacktrace(self, frames: Sequence[StackFrame]) -> Optional[List[Dict[str, Any]]]:
        if not frames:
            return None

        result = []
        for frame in frames:
            entry = {
                "method": frame.method,
                "file": frame.file,
                "lineNumber": frame.line_number,
            }
            if frame.in_project:
                entry["inProject"] = True
            result.append(entry)
        return result

    def _transform_session(self) -> Optional[Dict[str, Any]]:
        session = self.event.session
        if session is None:
            return None

        return {
            "id": session.id,
            "startedAt": session.started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "events": {
                "handled": session.handled,
                "unhandled": session.unhandled,
            },
        }

    def _transform_user(self, user: Optional[User]) -> Optional[Dict[str, str]]:
        if user is None:
            return None

        document = {"id": user.id, "name": user.name, "email": user.email}
        return {k: v for k, v in document.items() if v}


def filter_meta_data(value: Any, filters: Sequence[str]) -> Any:
    """
    Replace values whose key matches a filter with a placeholder.

    Matching is a case-insensitive substring match on dict keys, applied at
    every nesting level.
    """
    lowered = [f.lower() for f in filters]

    def _filter(item: Any) -> Any:
        if isinstance(item, dict):
            return {
                k: FILTERED if _is_filtered(k) else _filter(v)
                for k, v in item.items()
            }
        if isinstance(item, (list, tuple)):
            return [_filter(v) for v in item]
        return item

    def _is_filtered(key: Any) -> bool:
        key = str(key).lower()
        return any(f in key for f in lowered)

    return _filter(value)
