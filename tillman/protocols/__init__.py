"""
Tillman Protocols.

Defines interfaces for external system integration.
"""

from tillman.protocols.catalog import CatalogBackend, SubjectInfo
from tillman.protocols.context import OperationContext, TenantResolver

__all__ = [
    "CatalogBackend",
    "SubjectInfo",
    "OperationContext",
    "TenantResolver",
]
