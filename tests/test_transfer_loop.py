from __future__ import annotations

import pytest

from services.telephony.transfer_loop import (
    analyze_transfer_targets,
    department_destination,
    numbers_match,
    specialist_destination,
)
from services.tenants.tenant_base import DepartmentOption


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ("+15550004444", "+15550004444", True),
        ("15550004444", "+1 (555) 000-4444", True),
        ("5550004444", "+15550004444", True),
        ("+15553334444", "+15550004444", False),
        ("4444", "+15550004444", False),
        ("", "+15550004444", False),
        (None, None, False),
    ],
)
def test_numbers_match(a, b, expected):
    assert numbers_match(a, b) is expected


def test_department_pointing_at_did_is_flagged(ivr_tenant):
    analysis = analyze_transfer_targets(ivr_tenant)

    assert analysis.has_risk
    assert [(r.department, r.matches) for r in analysis.risks] == [("Front Desk", "did")]
    assert analysis.fallback == "+15557771111"
    assert analysis.to_dict()["fallback"] == "+15557771111"


def test_national_format_destination_still_loops(ivr_tenant):
    ivr_tenant.departments.append(DepartmentOption(name="Records", phone="5550004444", position=3))

    analysis = analyze_transfer_targets(ivr_tenant)

    assert [r.department for r in analysis.risks] == ["Front Desk", "Records"]


def test_business_line_is_a_loop_target(tenant):
    tenant.departments = [DepartmentOption(name="Reception", phone="+15550002222", position=1)]

    analysis = analyze_transfer_targets(tenant)

    assert analysis.risks[0].matches == "business_phone"


def test_disabled_departments_are_ignored(ivr_tenant):
    ivr_tenant.departments[1].enabled = False
    assert not analyze_transfer_targets(ivr_tenant).has_risk


def test_safe_department_dials_its_own_number(ivr_tenant):
    billing, front_desk = ivr_tenant.departments
    assert department_destination(ivr_tenant, billing) == "+15553334444"
    assert department_destination(ivr_tenant, front_desk) == "+15557771111"


def test_no_fallback_when_owner_phone_also_loops(ivr_tenant):
    ivr_tenant.owner_phone = ivr_tenant.did
    front_desk = ivr_tenant.departments[1]

    assert analyze_transfer_targets(ivr_tenant).fallback is None
    assert department_destination(ivr_tenant, front_desk) is None


def test_specialist_prefers_owner_phone(tenant):
    assert specialist_destination(tenant) == "+15557770000"


def test_specialist_uses_business_line_without_owner(tenant):
    tenant.owner_phone = None
    assert specialist_destination(tenant) == "+15550002222"

    tenant.business_phone = tenant.did
    assert specialist_destination(tenant) is None
