"""Sensor assignment administration."""

from fastapi import APIRouter, Depends

from . import get_services
from ..assignments.service import DEFAULT_LOCATION_TYPE
from ..auth.api_key import get_caller, require_api_key
from ..auth.authorization import Caller
from ..schemas import AssignmentCreate, AutoAssignResult, SensorAssignment
from ..services import MonitorServices

router = APIRouter(tags=["assignments"], dependencies=[Depends(require_api_key)])


@router.post("/assignments", response_model=SensorAssignment, status_code=201)
def create_assignment(
    payload: AssignmentCreate,
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    return services.assignments.assign(caller, payload)


@router.post("/assignments/auto", response_model=AutoAssignResult)
async def auto_assign(
    location_type: str = DEFAULT_LOCATION_TYPE,
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    """Assign unassigned provider sensors to the site named in their display name."""
    return await services.assignments.auto_assign(caller, location_type=location_type)


@router.delete("/assignments/{assignment_id}", response_model=SensorAssignment)
def deactivate_assignment(
    assignment_id: str,
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    return services.assignments.deactivate(caller, assignment_id)
