"""
Catalog Protocol — Interface for product/variant lookups.

Tillman defines this protocol, the catalog system implements it.
It supplies the defaults the core needs but does not own:
low-stock thresholds and unit prices.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class SubjectInfo:
    """Catalog facts about a product or variant."""

    subject_id: str
    name: str
    is_active: bool = True
    unit_price: Decimal | None = None
    low_stock_threshold: int | None = None
    sku: str | None = None


@runtime_checkable
class CatalogBackend(Protocol):
    """
    Protocol for catalog lookups.

    Implementations should provide methods to:
    - Look up a single subject
    - Look up many subjects at once (threshold evaluation, pricing a cart)
    """

    def get_subject_info(self, subject_id: str) -> SubjectInfo | None:
        """
        Get subject information.

        Args:
            subject_id: Product or variant identifier

        Returns:
            SubjectInfo or None if unknown
        """
        ...

    def get_subjects_info(self, subject_ids: list[str]) -> dict[str, SubjectInfo]:
        """
        Get information for many subjects.

        Unknown subjects are simply absent from the result.
        """
        ...
