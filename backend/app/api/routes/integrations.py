"""
Direct RMV lookups for adjusters
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps import get_container, get_current_user_id
from app.core.container import Container

router = APIRouter()


class LicenseValidationRequest(BaseModel):
    license_number: str
    state: str


async def _run(container: Container, fn, *args, name: str) -> Dict[str, Any]:
    handle = container.executor.submit(fn, *args, name=name, integration=container.rmv.name)
    return await handle.wait(timeout=container.rmv.max_call_duration())


@router.post("/rmv/licenses/validate")
async def validate_license(
    request: LicenseValidationRequest,
    user_id: int = Depends(get_current_user_id),
    container: Container = Depends(get_container),
):
    return await _run(
        container,
        container.rmv.validate_license,
        request.license_number,
        request.state,
        name="rmv-license-validate",
    )


@router.get("/rmv/drivers/{license_number}/history")
async def driver_history(
    license_number: str,
    state: str = Query(..., min_length=2, max_length=2),
    user_id: int = Depends(get_current_user_id),
    container: Container = Depends(get_container),
):
    return await _run(
        container,
        container.rmv.driver_history,
        license_number,
        state,
        name="rmv-driver-history",
    )


@router.get("/rmv/vehicles/{vin}/history")
async def vehicle_history(
    vin: str,
    user_id: int = Depends(get_current_user_id),
    container: Container = Depends(get_container),
):
    return await _run(container, container.rmv.vehicle_history, vin, name="rmv-vehicle-history")
