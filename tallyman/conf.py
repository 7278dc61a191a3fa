"""
Tallyman Settings.

Supports two formats (dict takes priority):

    # Option 1: Dict
    TALLYMAN = {
        "API_BASE_URL": "https://records.example.com",
        "LOCK_TIMEOUT": 30,
    }

    # Option 2: Flat
    TALLYMAN_API_BASE_URL = "https://records.example.com"
    TALLYMAN_LOCK_TIMEOUT = 30

All settings have sensible defaults; only API_BASE_URL is needed to talk
to a real record service.
"""

import logging
import threading

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


# ── Defaults ──

DEFAULTS = {
    "RECORD_CLIENT": "tallyman.adapters.http.HttpRecordClient",
    "LOCK_BACKEND": "tallyman.adapters.locks.CacheLock",
    "API_BASE_URL": "",
    "API_TOKEN": None,
    "REQUEST_TIMEOUT": 10.0,
    "SKU_PAGE_SIZE": 1000,
    "LOCK_TIMEOUT": 30,
    "LOCK_CACHE_ALIAS": "default",
    "PRICE_WORKERS": 8,
    "COMPENSATE_ON_ERROR": False,
    "ARCHIVE_SKU_POLICY": "retain",
}

ARCHIVE_POLICIES = ("retain", "deplete")


# ── Accessors ──

_sentinel = object()


def get_setting(name, default=_sentinel):
    """
    Get a tallyman setting.

    Looks up in order:
    1. TALLYMAN dict (e.g. TALLYMAN = {"API_BASE_URL": "..."})
    2. Flat setting (e.g. TALLYMAN_API_BASE_URL = "...")
    3. DEFAULTS
    """
    tallyman_dict = getattr(settings, "TALLYMAN", {})
    if name in tallyman_dict:
        return tallyman_dict[name]

    flat_value = getattr(settings, f"TALLYMAN_{name}", _sentinel)
    if flat_value is not _sentinel:
        return flat_value

    if default is not _sentinel:
        return default

    return DEFAULTS.get(name)


def get_archive_policy() -> str:
    policy = get_setting("ARCHIVE_SKU_POLICY")
    if policy not in ARCHIVE_POLICIES:
        raise ImproperlyConfigured(
            f"TALLYMAN['ARCHIVE_SKU_POLICY'] must be one of {ARCHIVE_POLICIES}, got {policy!r}"
        )
    return policy


# ── Backends ──

_backend_lock = threading.Lock()
_record_client_instance = None
_lock_backend_instance = None


def _load_backend(setting_name: str):
    path = get_setting(setting_name)
    if not path:
        return None

    try:
        backend_class = import_string(path)
    except ImportError as e:
        raise ImproperlyConfigured(
            f"Failed to import {setting_name.lower()} '{path}': {e}"
        ) from e

    logger.debug(f"Loaded {setting_name.lower()}: {path}")
    return backend_class()


def get_record_client():
    """
    Return the configured record client instance.

    Raises:
        ImproperlyConfigured: If RECORD_CLIENT is empty or import fails
    """
    global _record_client_instance

    if _record_client_instance is None:
        with _backend_lock:
            if _record_client_instance is None:  # double-checked
                client = _load_backend("RECORD_CLIENT")
                if client is None:
                    raise ImproperlyConfigured(
                        "TALLYMAN['RECORD_CLIENT'] must be configured. "
                        "Example: 'tallyman.adapters.http.HttpRecordClient'"
                    )
                _record_client_instance = client

    return _record_client_instance


def get_lock_backend():
    """
    Return the configured lock backend instance, or None.

    LOCK_BACKEND = None disables per-product locking.
    """
    global _lock_backend_instance

    if not get_setting("LOCK_BACKEND"):
        return None

    if _lock_backend_instance is None:
        with _backend_lock:
            if _lock_backend_instance is None:  # double-checked
                _lock_backend_instance = _load_backend("LOCK_BACKEND")

    return _lock_backend_instance


def reset_backends() -> None:
    """Reset singletons (for tests)."""
    global _record_client_instance, _lock_backend_instance
    _record_client_instance = None
    _lock_backend_instance = None
