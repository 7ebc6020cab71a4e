"""
Noop Catalog Backend — Stub adapter for development and testing.

Knows no subjects, so every lookup returns nothing and the core falls
back to its own defaults (record reorder point, DEFAULT_LOW_STOCK_THRESHOLD,
caller-supplied prices).

Usage in settings.py:
    TILLMAN = {
        "CATALOG_BACKEND": "tillman.adapters.noop.NoopCatalogBackend",
    }
"""

from __future__ import annotations

from tillman.protocols.catalog import SubjectInfo


class NoopCatalogBackend:
    """No-operation catalog for development and testing."""

    def get_subject_info(self, subject_id: str) -> SubjectInfo | None:
        return None

    def get_subjects_info(self, subject_ids: list[str]) -> dict[str, SubjectInfo]:
        return {}


class StaticCatalogBackend:
    """
    In-memory catalog seeded from a dict.

    Handy for fixtures and small deployments that keep prices in settings:

        backend = StaticCatalogBackend({
            'SKU-1': SubjectInfo('SKU-1', 'Mug', unit_price=Decimal('9.90'), low_stock_threshold=5),
        })
    """

    def __init__(self, subjects: dict[str, SubjectInfo] | None = None):
        self.subjects = dict(subjects or {})

    def register(self, info: SubjectInfo) -> None:
        self.subjects[info.subject_id] = info

    def get_subject_info(self, subject_id: str) -> SubjectInfo | None:
        return self.subjects.get(subject_id)

    def get_subjects_info(self, subject_ids: list[str]) -> dict[str, SubjectInfo]:
        return {sid: self.subjects[sid] for sid in subject_ids if sid in self.subjects}
