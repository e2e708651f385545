"""Shared fixtures."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from faultwire import Configuration
from faultwire.errors import DeliveryError


class RecordingDelivery:
    """Delivery that records events instead of sending them."""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.calls = []
        self.delivered = threading.Event()

    def deliver(self, event, config):
        self.calls.append((event, config))
        self.delivered.set()
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture
def delivery():
    """Delivery that always succeeds."""
    return RecordingDelivery()


@pytest.fixture
def failing_delivery():
    """Delivery that always fails."""
    return RecordingDelivery(fail_with=DeliveryError("connection refused"))


@pytest.fixture
def executor():
    """Executor for background deliveries, drained after each test."""
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def config():
    """Configuration for a production notifier."""
    return Configuration(
        api_key="166f5ad3590596f9aa8d601ea89af845",
        release_stage="production",
        notify_release_stages=["production"],
        hostname="test-host",
    )
