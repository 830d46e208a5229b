"""
=====================================================
Voice Scheduling Platform - Tenant Resolver
=====================================================
Maps the dialed number of an inbound event to a tenant and applies
the usage gate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from services.phone.phone_normalizer import normalize_phone
from services.tenants.tenant_base import Tenant, TenantStore
from services.tenants.tenant_store import get_tenant_store
from services.tenants.usage_gate import UsageGate, get_usage_gate


class ResolutionStatus(Enum):
    """Outcome of resolving a dialed number"""
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    AGENT_DISABLED = "agent_disabled"
    USAGE_EXHAUSTED = "usage_exhausted"


@dataclass
class Resolution:
    """Tenant resolution result"""
    status: ResolutionStatus
    tenant: Optional[Tenant] = None

    @property
    def ok(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED


class TenantResolver:
    """
    Resolves tenants for inbound events.

    The usage gate fails open: if the allotment cannot be read the call
    proceeds. It fails closed only when the gate reports exhaustion.
    """

    def __init__(self, store: TenantStore = None, usage_gate: UsageGate = None):
        self.store = store or get_tenant_store()
        self.usage_gate = usage_gate or get_usage_gate()

    async def resolve(self, dialed: str, check_usage: bool = True) -> Resolution:
        """
        Resolve the tenant that owns a dialed number

        Args:
            dialed: The "to" number of the inbound event, any format
            check_usage: Apply the usage gate (first event of a call only)

        Returns:
            Resolution with status and tenant
        """
        did = normalize_phone(dialed)
        tenant = await self.store.get_by_did(did) if did else None

        if tenant is None:
            logger.warning(f"Tenant Resolver: No tenant for dialed number {dialed!r}")
            return Resolution(ResolutionStatus.NOT_FOUND)

        if not tenant.agent_enabled:
            logger.info(f"Tenant Resolver: Agent disabled for {tenant.id}")
            return Resolution(ResolutionStatus.AGENT_DISABLED, tenant)

        if check_usage:
            try:
                exhausted = await self.usage_gate.is_exhausted(tenant)
            except Exception as e:
                logger.error(f"Tenant Resolver: Usage check failed for {tenant.id}, allowing call: {e}")
                exhausted = False

            if exhausted:
                return Resolution(ResolutionStatus.USAGE_EXHAUSTED, tenant)

        return Resolution(ResolutionStatus.RESOLVED, tenant)

    async def resolve_by_id(self, tenant_id: str) -> Optional[Tenant]:
        """Look up a tenant by identifier (no usage check)"""
        return await self.store.get_by_id(tenant_id)


# Global instance
_tenant_resolver: Optional[TenantResolver] = None


def get_tenant_resolver() -> TenantResolver:
    """Get global tenant resolver instance"""
    global _tenant_resolver
    if _tenant_resolver is None:
        _tenant_resolver = TenantResolver()
    return _tenant_resolver
