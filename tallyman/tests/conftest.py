"""
Shared fixtures for Tallyman tests.
"""

import pytest
from django.core.cache import cache

from tallyman.conf import reset_backends


@pytest.fixture(autouse=True)
def _fresh_backends():
    """Every test gets a new configured record client and empty lock cache."""
    reset_backends()
    cache.clear()
    yield
    reset_backends()
    cache.clear()
