"""
Pytest configuration for unit tests.

Keeps OpenTelemetry on its no-op API for the whole unit suite.
"""

import os


def pytest_configure(config):
    """Disable the OpenTelemetry SDK before any test module imports it."""
    os.environ["OTEL_SDK_DISABLED"] = "true"
    os.environ["EXPLORER_TELEMETRY_ENABLED"] = "false"
