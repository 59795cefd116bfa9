"""Sensor and gateway views for the dashboard."""

from typing import List

from fastapi import APIRouter, Depends

from . import get_services
from ..auth.api_key import get_caller, require_api_key
from ..auth.authorization import Caller
from ..schemas import EnrichedSensorView, GatewayOverview
from ..services import MonitorServices

router = APIRouter(tags=["sensors"], dependencies=[Depends(require_api_key)])


@router.get("/sensors", response_model=List[EnrichedSensorView])
async def list_sensors(
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    """Assigned sensors visible to the caller, with latest reading and health."""
    return await services.aggregator.aggregate(caller)


@router.get("/gateways", response_model=GatewayOverview)
async def gateway_overview(
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    return await services.gateways.gateway_overview(caller)
