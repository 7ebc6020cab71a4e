"""
Catalog adapter loader.

Loads the configured CatalogBackend from settings.

Usage:
    from tillman.adapters import get_catalog

    catalog = get_catalog()
    info = catalog.get_subject_info("SKU-001")

Settings:
    TILLMAN = {
        "CATALOG_BACKEND": "catalog.adapters.TillmanCatalog",
    }

If CATALOG_BACKEND is not configured, get_catalog() raises ImproperlyConfigured.
"""

from __future__ import annotations

import logging
import threading

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from tillman.conf import tillman_settings
from tillman.protocols.catalog import CatalogBackend

logger = logging.getLogger(__name__)


# Cached backend instance
_lock = threading.Lock()
_catalog: CatalogBackend | None = None


def get_catalog() -> CatalogBackend:
    """
    Return the configured catalog backend.

    Raises:
        ImproperlyConfigured: If CATALOG_BACKEND is not configured or import fails
    """
    global _catalog

    if _catalog is None:
        with _lock:
            if _catalog is None:  # double-checked
                backend_path = tillman_settings.CATALOG_BACKEND

                if not backend_path:
                    raise ImproperlyConfigured(
                        "TILLMAN['CATALOG_BACKEND'] must be configured. "
                        "Example: 'tillman.adapters.noop.NoopCatalogBackend'"
                    )

                try:
                    backend_class = import_string(backend_path)
                except ImportError as e:
                    raise ImproperlyConfigured(
                        f"Failed to import catalog backend '{backend_path}': {e}"
                    ) from e

                backend = backend_class()
                if not isinstance(backend, CatalogBackend):
                    raise ImproperlyConfigured(
                        f"'{backend_path}' does not implement CatalogBackend"
                    )
                _catalog = backend
                logger.debug("Loaded catalog backend: %s", backend_path)

    return _catalog


def reset_catalog() -> None:
    """Reset the cached backend. Useful for testing."""
    global _catalog
    _catalog = None
