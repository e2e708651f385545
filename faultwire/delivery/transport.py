"""Payload delivery over HTTP."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from threading import Lock
from typing import Optional, Protocol

import httpx
import structlog

from ..config import Configuration
from ..errors import DeliveryError
from ..report.event import Event
from .payload import PAYLOAD_VERSION, Payload

logger = structlog.get_logger(__name__)

# Thread pool for fire-and-forget deliveries
_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = Lock()


def get_executor() -> ThreadPoolExecutor:
    """Get or create the shared delivery thread pool."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="faultwire")
    return _executor


def shutdown_executor(wait: bool = True) -> None:
    """Shut down the shared thread pool, waiting for pending deliveries."""
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None


class Delivery(Protocol):
    """Anything that can send an event. Raises DeliveryError on failure."""

    def deliver(self, event: Event, config: Configuration) -> None:
        ...


class HttpDelivery:
    """
    Deliver payloads to the notify endpoint with httpx.

    Best effort: one attempt per event, no retries.
    """

    def __init__(self, client: Optional[httpx.Client] = None):
        """
        Initialize delivery.

        Args:
            client: httpx client to reuse; a short-lived one is created per
                delivery when omitted
        """
        self.client = client

    def deliver(self, event: Event, config: Configuration) -> None:
        """
        Serialize and send one event.

        Args:
            event: Event to send
            config: Per-call configuration

        Raises:
            DeliveryError: If the payload cannot be encoded or sent
        """
        if not config.api_key:
            raise DeliveryError("no API key configured, not sending event")

        try:
            body = Payload(event, config).to_json()
        except (TypeError, ValueError) as e:
            raise DeliveryError(f"unable to marshal payload: {e}") from e

        headers = {
            "Bugsnag-Api-Key": config.api_key,
            "Bugsnag-Payload-Version": PAYLOAD_VERSION,
            "Bugsnag-Sent-At": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "Content-Type": "application/json",
        }

        try:
            if self.client is not None:
                response = self.client.post(
                    config.endpoint, content=body, headers=headers, timeout=config.timeout
                )
            else:
                with httpx.Client(timeout=config.timeout) as client:
                    response = client.post(config.endpoint, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryError(f"error sending payload: {e}") from e

        if not response.is_success:
            raise DeliveryError(
                f"unexpected status from notify endpoint: {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug("payload_delivered", endpoint=config.endpoint, status_code=response.status_code)
