"""
Operation context — who is acting, for which tenant, where.

The core never reads ambient state: every inbound call receives an
OperationContext built by the caller (typically from the request via
a TenantResolver).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class OperationContext:
    """
    Explicit context for one inbound call.

    Attributes:
        tenant_id: Already-resolved tenant
        location_id: Default location for the call (pk of tillman.Location)
        actor: User/terminal identifier recorded on ledger entries
    """

    tenant_id: str
    location_id: int | None = None
    actor: str = ''

    def at(self, location_id: int) -> OperationContext:
        """Same context, different default location."""
        return replace(self, location_id=location_id)


@runtime_checkable
class TenantResolver(Protocol):
    """Builds an OperationContext from an incoming request (external)."""

    def resolve(self, request: Any) -> OperationContext:
        ...
