#!/usr/bin/env python3
"""
Send a test error report.

Use this to check that an API key and endpoint are set up correctly.

Usage:
    python scripts/send_test_report.py --api-key KEY
    python scripts/send_test_report.py --api-key KEY --endpoint http://localhost:8000/
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from faultwire import ErrorContext, MetaData, Notifier, Severity, Settings
from faultwire.log_config import configure_logging


class TestReportError(Exception):
    """Error raised to produce the test report."""


def main():
    parser = argparse.ArgumentParser(description="Send a test error report")
    parser.add_argument(
        "--api-key",
        default=None,
        help="Notifier API key (defaults to FAULTWIRE_API_KEY)",
    )
    parser.add_argument(
        "--endpoint",
        default=None,
        help="Notify endpoint URL",
    )
    parser.add_argument(
        "--release-stage",
        default=None,
        help="Release stage to report from",
    )
    parser.add_argument(
        "--severity",
        choices=[s.value for s in Severity],
        default=Severity.ERROR.value,
        help="Report severity",
    )

    args = parser.parse_args()

    overrides = {
        "api_key": args.api_key,
        "endpoint": args.endpoint,
        "release_stage": args.release_stage,
    }
    settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    configure_logging(settings.log_level)

    if not settings.api_key:
        print("ERROR: No API key given (use --api-key or FAULTWIRE_API_KEY)")
        sys.exit(1)

    notifier = Notifier(config=settings.to_configuration())
    print(f"Sending test report to {notifier.config.endpoint}")

    try:
        raise TestReportError("This is a test report sent by faultwire")
    except TestReportError as e:
        error = notifier.notify_sync(
            e,
            True,
            Severity(args.severity),
            ErrorContext("send_test_report"),
            MetaData({"test": {"script": "send_test_report.py"}}),
        )

    if error is not None:
        print(f"✗ Report not sent: {error}")
        sys.exit(1)

    print("✓ Report sent")


if __name__ == "__main__":
    main()
