"""
=====================================================
Voice Scheduling Platform - Tenant Store
=====================================================
Loads tenant configuration from clients/tenants.yaml or from the
tenants table.
"""

import json
import os
from pathlib import Path
from typing import Optional, List, Dict, Any

import yaml
from loguru import logger

from config.settings import get_settings
from services.errors import TenantConfigError
from services.phone.phone_normalizer import normalize_phone
from services.tenants.tenant_base import (
    Tenant,
    TenantStore,
    BusinessHours,
    DepartmentOption,
    CalendarSource,
)

SUPPORTED_LANGUAGES = ("en", "es")


def _optional_phone(value: Any) -> Optional[str]:
    if not value:
        return None
    return normalize_phone(str(value)) or None


def tenant_from_dict(raw: Dict[str, Any]) -> Tenant:
    """
    Build a Tenant from a configuration mapping

    Raises:
        TenantConfigError: If required fields are missing or invalid
    """
    try:
        tenant_id = str(raw["id"])
        did = normalize_phone(str(raw["did"]))
    except KeyError as e:
        raise TenantConfigError(f"Tenant is missing required field {e}") from e

    if not did:
        raise TenantConfigError(f"Tenant {tenant_id} has an empty DID")

    departments = [
        DepartmentOption(
            name=str(item["name"]),
            phone=_optional_phone(item.get("phone")) or "",
            enabled=bool(item.get("enabled", True)),
            position=int(item.get("position", index)),
        )
        for index, item in enumerate(raw.get("departments") or [])
    ]

    calendar = raw.get("calendar_source")
    calendar_source = None
    if isinstance(calendar, dict) and calendar.get("kind"):
        calendar_source = CalendarSource(
            kind=str(calendar["kind"]),
            config={k: v for k, v in calendar.items() if k != "kind"},
        )
    elif isinstance(calendar, str) and calendar and calendar != "local":
        calendar_source = CalendarSource(kind=calendar)

    languages = [str(code).lower() for code in (raw.get("languages") or ["en"])]
    unknown = [code for code in languages if code not in SUPPORTED_LANGUAGES]
    if unknown:
        raise TenantConfigError(f"Tenant {tenant_id} has unsupported languages: {unknown}")
    default_language = str(raw.get("default_language", languages[0])).lower()
    if default_language not in languages:
        default_language = languages[0]

    duration = int(raw.get("slot_duration_minutes", 30))
    if not 15 <= duration <= 180:
        raise TenantConfigError(f"Tenant {tenant_id} slot duration out of range: {duration}")

    return Tenant(
        id=tenant_id,
        name=str(raw.get("name", tenant_id)),
        did=did,
        timezone=str(raw.get("timezone", "America/New_York")),
        slot_duration_minutes=duration,
        business_hours=BusinessHours.from_config(raw.get("business_hours")),
        ivr_enabled=bool(raw.get("ivr_enabled", False)),
        departments=departments,
        owner_phone=_optional_phone(raw.get("owner_phone")),
        business_phone=_optional_phone(raw.get("business_phone")),
        calendar_source=calendar_source,
        agent_enabled=bool(raw.get("agent_enabled", True)),
        languages=languages,
        default_language=default_language,
        deposit_required=bool(raw.get("deposit_required", False)),
    )


def index_tenants(tenants: List[Tenant]) -> Dict[str, Tenant]:
    """Index tenants by DID, rejecting duplicates"""
    by_did: Dict[str, Tenant] = {}
    for tenant in tenants:
        if tenant.did in by_did:
            raise TenantConfigError(
                f"DID {tenant.did} is assigned to both {by_did[tenant.did].id} and {tenant.id}"
            )
        by_did[tenant.did] = tenant
    return by_did


class YamlTenantStore(TenantStore):
    """
    Tenant configuration from a YAML file.

    This allows onboarding a business without code changes or rebuilds.
    """

    def __init__(self, config_path: str = None):
        """
        Initialize the store

        Args:
            config_path: Path to tenants.yaml file
        """
        if not config_path:
            # Default path relative to this file
            default_path = Path(__file__).parent.parent.parent / "clients" / "tenants.yaml"
            config_path = str(default_path)

        self.config_path = config_path
        self._by_did: Dict[str, Tenant] = {}
        self._by_id: Dict[str, Tenant] = {}

        self._load_tenants()

    def _load_tenants(self):
        """Load tenants from YAML file"""
        if not os.path.exists(self.config_path):
            logger.warning(f"Tenant config not found: {self.config_path}")
            return

        with open(self.config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        tenants = [tenant_from_dict(item) for item in data.get('tenants', [])]
        self._by_did = index_tenants(tenants)
        self._by_id = {t.id: t for t in tenants}

        logger.info(f"Loaded {len(tenants)} tenants from {self.config_path}")

    def all_tenants(self) -> List[Tenant]:
        return list(self._by_id.values())

    async def get_by_did(self, did: str) -> Optional[Tenant]:
        return self._by_did.get(did)

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return self._by_id.get(tenant_id)


class InMemoryTenantStore(TenantStore):
    """Tenant store over an explicit list (tests and embedding)"""

    def __init__(self, tenants: List[Tenant]):
        self._by_did = index_tenants(tenants)
        self._by_id = {t.id: t for t in tenants}

    async def get_by_did(self, did: str) -> Optional[Tenant]:
        return self._by_did.get(did)

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return self._by_id.get(tenant_id)


class PostgresTenantStore(TenantStore):
    """Tenant configuration from the tenants table"""

    _COLUMNS = """
        id, name, did, timezone, slot_duration_minutes, business_hours,
        ivr_enabled, departments, owner_phone, business_phone, calendar_source,
        agent_enabled, languages, default_language, deposit_required
    """

    def __init__(self, pool_getter=None):
        if pool_getter is None:
            from services.database import get_db_pool
            pool_getter = get_db_pool
        self._get_pool = pool_getter

    @staticmethod
    def _row_to_tenant(row) -> Tenant:
        raw = dict(row)
        for key in ("business_hours", "departments", "calendar_source"):
            if isinstance(raw.get(key), str):
                raw[key] = json.loads(raw[key])
        if raw.get("languages") is not None:
            raw["languages"] = list(raw["languages"])
        return tenant_from_dict({k: v for k, v in raw.items() if v is not None})

    async def get_by_did(self, did: str) -> Optional[Tenant]:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"SELECT {self._COLUMNS} FROM tenants WHERE did = $1", did)
        return self._row_to_tenant(row) if row else None

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"SELECT {self._COLUMNS} FROM tenants WHERE id = $1", tenant_id)
        return self._row_to_tenant(row) if row else None


# Global instance
_tenant_store: Optional[TenantStore] = None


def get_tenant_store() -> TenantStore:
    """Get global tenant store instance"""
    global _tenant_store
    if _tenant_store is None:
        settings = get_settings()
        if settings.tenant_source == "postgres":
            _tenant_store = PostgresTenantStore()
        else:
            _tenant_store = YamlTenantStore(settings.tenants_file or None)
    return _tenant_store
