"""
Pytest configuration and fixtures.

Every test that touches proxies gets its own GuestRuntime over
``tests/guest_sources`` and its own Identity Cache, so proxies never leak
between tests.
"""

import logging
import sys
from pathlib import Path

import pytest

from pyglue import GlueContext, GuestRuntime, context_scope, identity_scope

GUEST_SOURCES = Path(__file__).parent / "guest_sources"


def pytest_configure(config):
    """Configure pytest with custom settings."""
    log_level = logging.DEBUG if config.getoption("--debug-pyglue") else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("pyglue").setLevel(log_level)

    custom_log_file = config.getoption("--pyglue-log-file")
    if custom_log_file:
        file_handler = logging.FileHandler(custom_log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )
        )
        logging.getLogger().addHandler(file_handler)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--debug-pyglue",
        action="store_true",
        default=False,
        help="Enable debug logging for pyglue (shows every crossing)",
    )
    parser.addoption(
        "--pyglue-log-file",
        action="store",
        default=None,
        help="Log pyglue debug output to specified file",
    )


@pytest.fixture
def guest_sources() -> Path:
    return GUEST_SOURCES


@pytest.fixture
def runtime():
    """A GuestRuntime over the test guest sources, closed after the test."""
    guest = GuestRuntime([GUEST_SOURCES])
    yield guest
    guest.close()


@pytest.fixture
def glue(runtime, request):
    """An active GlueContext with a fresh Identity Cache."""
    with identity_scope() as cache:
        context = GlueContext(
            runtime,
            identity_cache=cache,
            debug_crossings=request.config.getoption("--debug-pyglue"),
        )
        with context_scope(context):
            yield context
