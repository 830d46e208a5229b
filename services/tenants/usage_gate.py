"""
=====================================================
Voice Scheduling Platform - Usage Gate
=====================================================
Decides whether the automated agent may answer for a tenant.
"""

from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from config.settings import get_settings
from services.tenants.tenant_base import Tenant


class UsageGate(ABC):
    """Usage allotment check for a tenant's account"""

    @abstractmethod
    async def is_exhausted(self, tenant: Tenant) -> bool:
        """
        Check the tenant's usage allotment

        Returns:
            True only when the account has explicitly run out

        Raises:
            Exception: When the allotment cannot be read
        """
        pass


class AllowAllUsageGate(UsageGate):
    """Unmetered deployments"""

    async def is_exhausted(self, tenant: Tenant) -> bool:
        return False


class PostgresUsageGate(UsageGate):
    """Token balance from the usage_accounts table"""

    def __init__(self, min_balance: int = None, pool_getter=None):
        if pool_getter is None:
            from services.database import get_db_pool
            pool_getter = get_db_pool
        self._get_pool = pool_getter
        self.min_balance = min_balance if min_balance is not None else get_settings().usage_min_balance

    async def is_exhausted(self, tenant: Tenant) -> bool:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            "SELECT tokens_balance FROM usage_accounts WHERE tenant_id = $1",
            tenant.id,
        )
        if row is None or row["tokens_balance"] is None:
            # No account row: tenant is not metered
            return False

        balance = row["tokens_balance"]
        if balance < self.min_balance:
            logger.info(f"Usage Gate: Tenant {tenant.id} exhausted (balance={balance})")
            return True
        return False


# Global instance
_usage_gate: Optional[UsageGate] = None


def get_usage_gate() -> UsageGate:
    """Get global usage gate instance"""
    global _usage_gate
    if _usage_gate is None:
        if get_settings().storage_backend == "postgres":
            _usage_gate = PostgresUsageGate()
        else:
            _usage_gate = AllowAllUsageGate()
    return _usage_gate
