"""Shared-package test configuration."""

import pytest
from trailclub.config import reset_settings_cache


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()
