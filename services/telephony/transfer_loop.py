"""
=====================================================
Voice Scheduling Platform - Transfer-Loop Analyzer
=====================================================
Flags transfer destinations that would dial back into this system
(the tenant's own DID, or the business line that forwards to it) and
picks a safe fallback destination.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from loguru import logger

from services.phone.phone_normalizer import digits_only
from services.tenants.tenant_base import Tenant, DepartmentOption

# Shorter numbers (extensions, short codes) never suffix-match
MIN_SUFFIX_DIGITS = 7


def numbers_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two phone numbers digit-wise, tolerant of country codes.

    Equal digit strings match; otherwise the shorter must be a suffix of
    the longer and at least MIN_SUFFIX_DIGITS long.
    """
    da, db = digits_only(a or ""), digits_only(b or "")
    if not da or not db:
        return False
    if da == db:
        return True
    shorter, longer = (da, db) if len(da) <= len(db) else (db, da)
    return len(shorter) >= MIN_SUFFIX_DIGITS and longer.endswith(shorter)


@dataclass
class LoopRisk:
    """A department whose destination routes back into the agent"""
    department: str
    phone: str
    matches: str  # "did" or "business_phone"


@dataclass
class LoopAnalysis:
    """Loop risks for a tenant and the fallback to use instead"""
    risks: List[LoopRisk] = field(default_factory=list)
    fallback: Optional[str] = None

    @property
    def has_risk(self) -> bool:
        return bool(self.risks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risks": [
                {"department": r.department, "phone": r.phone, "matches": r.matches}
                for r in self.risks
            ],
            "fallback": self.fallback,
        }


def loop_reason(tenant: Tenant, phone: Optional[str]) -> Optional[str]:
    """Why dialing a number would loop, or None if it is safe"""
    if numbers_match(phone, tenant.did):
        return "did"
    if numbers_match(phone, tenant.business_phone):
        return "business_phone"
    return None


def safe_fallback(tenant: Tenant) -> Optional[str]:
    """The owner phone when it does not itself loop back"""
    if tenant.owner_phone and loop_reason(tenant, tenant.owner_phone) is None:
        return tenant.owner_phone
    return None


def analyze_transfer_targets(tenant: Tenant) -> LoopAnalysis:
    """
    Check every enabled department destination against the tenant's DID
    and upstream business line.

    Args:
        tenant: Tenant configuration

    Returns:
        LoopAnalysis with flagged departments and a safe fallback
    """
    analysis = LoopAnalysis(fallback=safe_fallback(tenant))

    for department in tenant.departments:
        if not department.enabled:
            continue
        reason = loop_reason(tenant, department.phone)
        if reason:
            analysis.risks.append(LoopRisk(department.name, department.phone, reason))
            logger.warning(
                f"Transfer: Department '{department.name}' ({department.phone}) for tenant "
                f"{tenant.id} routes back to its {reason}; fallback={analysis.fallback}"
            )

    return analysis


def department_destination(tenant: Tenant, department: DepartmentOption) -> Optional[str]:
    """
    Number to dial for a department, substituting the fallback when the
    configured destination would loop. None means no safe destination.
    """
    reason = loop_reason(tenant, department.phone)
    if reason is None:
        return department.phone

    fallback = safe_fallback(tenant)
    logger.warning(
        f"Transfer: Loop risk for '{department.name}' on tenant {tenant.id} "
        f"(matches {reason}), using {fallback or 'voicemail'}"
    )
    return fallback


def specialist_destination(tenant: Tenant) -> Optional[str]:
    """
    Number to dial for a human specialist.

    The business line is the upstream forwarding target, so it is only
    used when the owner phone is missing and the line does not forward
    into the DID.
    """
    fallback = safe_fallback(tenant)
    if fallback:
        return fallback
    if tenant.business_phone and not numbers_match(tenant.business_phone, tenant.did):
        return tenant.business_phone
    return None
