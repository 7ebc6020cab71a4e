"""
Tillman Adapters.

Implementations of protocols for external systems.
"""

from tillman.adapters.catalog import get_catalog, reset_catalog
from tillman.adapters.noop import NoopCatalogBackend, StaticCatalogBackend

__all__ = [
    "get_catalog",
    "reset_catalog",
    "NoopCatalogBackend",
    "StaticCatalogBackend",
]
