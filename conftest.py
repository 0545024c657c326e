"""Global pytest configuration.

We explicitly disable auto-loading of external pytest plugins to prevent
environment-provided plugins from interfering with test discovery and capture.
"""

import os
import logging
import signal
import pytest

os.environ.setdefault("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")
# Torch debug logging can fire after pytest has closed its capture streams.
os.environ.pop("TORCH_LOGS", None)

for _logger_name in [
    "torch._dynamo",
    "torch._dynamo.utils",
]:
    _logger = logging.getLogger(_logger_name)
    _logger.handlers.clear()
    _logger.addHandler(logging.NullHandler())
    _logger.propagate = False


# -----------------------------------------------------------------------------
# Simple built-in timeout support (pytest-timeout is disabled by plugin block)
# -----------------------------------------------------------------------------
def _parse_timeout(config) -> float:
    try:
        return float(config.getini("timeout"))
    except (TypeError, ValueError):
        return 0.0


def pytest_configure(config):
    config._global_timeout = _parse_timeout(config)


def pytest_addoption(parser):
    parser.addini("timeout", "Global timeout (seconds)", default="0")


@pytest.fixture(autouse=True)
def _restore_defaults():
    from mps_load.defaults import get_defaults, set_defaults

    saved = get_defaults()
    yield
    set_defaults(saved)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_call(item):
    timeout = getattr(item.config, "_global_timeout", 0)
    if not timeout or timeout <= 0 or not hasattr(signal, "SIGALRM"):
        yield
        return

    def _handler(signum, frame):
        raise TimeoutError(f"Test exceeded global timeout of {timeout} seconds")

    previous = signal.signal(signal.SIGALRM, _handler)
    signal.alarm(int(timeout))
    try:
        yield
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)
