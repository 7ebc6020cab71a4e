"""
Tillman configuration.

Usage in settings.py:
    TILLMAN = {
        "CATALOG_BACKEND": "catalog.adapters.TillmanCatalog",
        "DEFAULT_LOW_STOCK_THRESHOLD": 10,
        "PAYMENT_TOLERANCE": Decimal("0.01"),
        "MAX_RETRIES": 3,
    }
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.conf import settings


@dataclass
class TillmanSettings:
    """Tillman configuration settings."""

    # Catalog lookup backend (dotted path)
    CATALOG_BACKEND: str = ""

    # Low-stock threshold when neither catalog nor record supplies one
    DEFAULT_LOW_STOCK_THRESHOLD: int = 10

    # Max |sum(payments) - total| accepted at completion
    PAYMENT_TOLERANCE: Decimal = Decimal("0.01")

    # Serialization-conflict retry policy
    MAX_RETRIES: int = 3
    RETRY_BACKOFF_SECONDS: float = 0.05

    SALE_NUMBER_PREFIX: str = "SALE"
    TRANSFER_REFERENCE_PREFIX: str = "TRF"


def get_tillman_settings() -> TillmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "TILLMAN", {})
    return TillmanSettings(**{
        k: v for k, v in user_settings.items()
        if k in TillmanSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_tillman_settings(), name)


tillman_settings = _LazySettings()
