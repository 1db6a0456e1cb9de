"""
Pytest configuration for the Starfish test suite.

    python -m pytest                      # everything except display tests
    STARFISH_DISPLAY=1 python -m pytest   # also open real pygame windows

Tests marked ``display`` need pygame and a video driver; they are
skipped unless STARFISH_DISPLAY is set.
"""

import os
import sys

import pytest

# Test modules import the interpreter modules from the repo root.
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "display: tests that open a pygame window (skipped by default)")


def pytest_collection_modifyitems(config, items):
    if os.environ.get("STARFISH_DISPLAY"):
        return
    skip_display = pytest.mark.skip(
        reason="display test (set STARFISH_DISPLAY=1 to run)")
    for item in items:
        if item.get_closest_marker("display") is not None:
            item.add_marker(skip_display)
