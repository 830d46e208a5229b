from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest

from conftest import TOMORROW, BrokenUsageGate, ExhaustedUsageGate
from services.errors import TenantConfigError
from services.tenants.tenant_base import BusinessHours, parse_day_range
from services.tenants.tenant_resolver import ResolutionStatus, TenantResolver
from services.tenants.tenant_store import (
    InMemoryTenantStore,
    YamlTenantStore,
    tenant_from_dict,
)
from services.tenants.usage_gate import AllowAllUsageGate

TENANTS_YAML = """
tenants:
  - id: acme
    name: Acme Dental
    did: "(555) 000-1111"
    owner_phone: "555-777-0000"
    languages: [en, es]
    business_hours: {start: "08:00", end: "12:00", days: "mon-wed"}
    calendar_source:
      kind: ms_bookings
      business_id: acme@example.com
    departments:
      - name: Billing
        phone: "555 333 4444"
        position: 1
  - id: globex
    name: Globex Clinic
    did: "+15550009999"
    agent_enabled: false
    business_hours:
      monday: {open: "10:00", close: "14:00"}
      sunday: {enabled: false}
"""


@pytest.fixture
def tenants_file(tmp_path) -> Path:
    path = tmp_path / "tenants.yaml"
    path.write_text(TENANTS_YAML, encoding="utf-8")
    return path


def test_yaml_store_loads_and_normalizes(tenants_file):
    store = YamlTenantStore(str(tenants_file))

    acme = next(t for t in store.all_tenants() if t.id == "acme")
    assert acme.did == "+15550001111"
    assert acme.owner_phone == "+15557770000"
    assert acme.departments[0].phone == "+15553334444"
    assert acme.is_multilingual
    assert acme.calendar_source.kind == "ms_bookings"
    assert acme.calendar_source.config == {"business_id": "acme@example.com"}
    assert acme.business_hours.contains(TOMORROW, time(11, 30), 30)
    assert not acme.business_hours.contains(TOMORROW, time(12, 0), 30)


async def test_yaml_store_lookups(tenants_file):
    store = YamlTenantStore(str(tenants_file))

    assert (await store.get_by_did("+15550001111")).id == "acme"
    assert (await store.get_by_id("globex")).agent_enabled is False
    assert await store.get_by_did("+15550000000") is None


def test_missing_yaml_file_is_empty(tmp_path):
    assert YamlTenantStore(str(tmp_path / "absent.yaml")).all_tenants() == []


def test_duplicate_did_is_a_configuration_error(tmp_path):
    path = tmp_path / "tenants.yaml"
    path.write_text(
        'tenants:\n  - {id: a, did: "+15550001111"}\n  - {id: b, did: "555-000-1111"}\n',
        encoding="utf-8",
    )
    with pytest.raises(TenantConfigError, match="assigned to both"):
        YamlTenantStore(str(path))


@pytest.mark.parametrize(
    "raw",
    [
        {"name": "no id", "did": "+15550001111"},
        {"id": "x", "did": ""},
        {"id": "x", "did": "+15550001111", "languages": ["fr"]},
        {"id": "x", "did": "+15550001111", "slot_duration_minutes": 5},
        {"id": "x", "did": "+15550001111", "business_hours": {"funday": {"open": "09:00"}}},
    ],
)
def test_invalid_tenant_config(raw):
    with pytest.raises(TenantConfigError):
        tenant_from_dict(raw)


@pytest.mark.parametrize(
    "days, expected",
    [
        ("mon-fri", [0, 1, 2, 3, 4]),
        ("fri-mon", [0, 4, 5, 6]),
        ("mon,wed,fri", [0, 2, 4]),
        ("daily", [0, 1, 2, 3, 4, 5, 6]),
        ("weekends", [5, 6]),
    ],
)
def test_day_ranges(days, expected):
    assert parse_day_range(days) == expected


def test_per_weekday_hours_can_close_a_day():
    hours = BusinessHours.from_config({"tuesday": {"open": "10:00", "close": "11:00"}, "wednesday": {"enabled": False}})
    assert hours.contains(TOMORROW, time(10, 0), 60)
    assert hours.for_date(TOMORROW.replace(day=6)) is None


@pytest.fixture
def store(tenant) -> InMemoryTenantStore:
    return InMemoryTenantStore([tenant])


async def test_resolves_any_dialed_format(store):
    resolver = TenantResolver(store=store, usage_gate=AllowAllUsageGate())

    resolution = await resolver.resolve("1 (555) 000-1111")

    assert resolution.ok
    assert resolution.tenant.id == "acme"


async def test_unknown_number_is_not_found(store):
    resolver = TenantResolver(store=store, usage_gate=AllowAllUsageGate())

    for dialed in ("+15559999999", "", "anonymous"):
        resolution = await resolver.resolve(dialed)
        assert resolution.status == ResolutionStatus.NOT_FOUND
        assert resolution.tenant is None


async def test_disabled_agent(tenant, store):
    tenant.agent_enabled = False
    resolution = await TenantResolver(store=store, usage_gate=ExhaustedUsageGate()).resolve("+15550001111")
    assert resolution.status == ResolutionStatus.AGENT_DISABLED


async def test_exhausted_usage_fails_closed(store):
    resolver = TenantResolver(store=store, usage_gate=ExhaustedUsageGate())

    assert (await resolver.resolve("+15550001111")).status == ResolutionStatus.USAGE_EXHAUSTED
    assert (await resolver.resolve("+15550001111", check_usage=False)).ok


async def test_unreadable_usage_fails_open(store):
    resolver = TenantResolver(store=store, usage_gate=BrokenUsageGate())
    assert (await resolver.resolve("+15550001111")).ok
