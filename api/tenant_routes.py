"""
=====================================================
Voice Scheduling Platform - Tenant Operations API
=====================================================
JSON endpoints for operators: availability for a date and the
transfer-loop report for a tenant's IVR configuration.
"""

from datetime import date as Date

from fastapi import APIRouter, Depends, HTTPException, Query

from services.calendar.availability_service import AvailabilityResolver, get_availability_resolver
from services.telephony.transfer_loop import analyze_transfer_targets, specialist_destination
from services.tenants.tenant_base import Tenant
from services.tenants.tenant_resolver import TenantResolver, get_tenant_resolver

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


async def _tenant_or_404(tenant_id: str, resolver: TenantResolver) -> Tenant:
    tenant = await resolver.resolve_by_id(tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=f"Tenant '{tenant_id}' not found")
    return tenant


@router.get("/{tenant_id}/availability")
async def get_tenant_availability(
    tenant_id: str,
    date: Date = Query(..., description="Tenant-local date, YYYY-MM-DD"),
    resolver: TenantResolver = Depends(get_tenant_resolver),
    availability: AvailabilityResolver = Depends(get_availability_resolver),
):
    """Open slots for a date and the source that produced them"""
    tenant = await _tenant_or_404(tenant_id, resolver)
    result = await availability.get_availability(tenant, date)
    return {"tenant_id": tenant.id, **result.to_dict()}


@router.get("/{tenant_id}/transfer-check")
async def get_transfer_check(
    tenant_id: str,
    resolver: TenantResolver = Depends(get_tenant_resolver),
):
    """Departments that would forward back into the agent, and the fallback"""
    tenant = await _tenant_or_404(tenant_id, resolver)
    analysis = analyze_transfer_targets(tenant)
    return {
        "tenant_id": tenant.id,
        "did": tenant.did,
        "has_risk": analysis.has_risk,
        "specialist_destination": specialist_destination(tenant),
        **analysis.to_dict(),
    }
