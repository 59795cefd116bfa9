"""Alert endpoints: listing, manual creation, checks and resolution."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends

from . import get_services
from ..auth.api_key import get_caller, require_api_key
from ..auth.authorization import Caller
from ..schemas import Alert, AlertCount, AlertCreate, AlertResolve, AlertType, CheckResult, Severity
from ..services import MonitorServices

router = APIRouter(tags=["alerts"], dependencies=[Depends(require_api_key)])


@router.get("/alerts", response_model=List[Alert])
def list_alerts(
    site_id: Optional[str] = None,
    resolved: Optional[bool] = None,
    severity: Optional[Severity] = None,
    type: Optional[AlertType] = None,
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    """Unresolved first, then by severity, then newest."""
    return services.alerts.list_alerts(
        caller,
        site_id=site_id,
        resolved=resolved,
        severity=severity.value if severity else None,
        alert_type=type.value if type else None,
    )


@router.get("/alerts/summary", response_model=List[AlertCount])
def alert_summary(
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    return services.alerts.summary(caller)


@router.post("/alerts", response_model=Alert, status_code=201)
def create_alert(
    payload: AlertCreate,
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    return services.alerts.create(caller, payload)


@router.post("/alerts/check", response_model=CheckResult)
async def check_alerts(
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    """Evaluate every sensor the caller can see and open the alerts due."""
    return await services.alerts.check_all_sensors(caller)


@router.put("/alerts/{alert_id}/resolve", response_model=Alert)
def resolve_alert(
    alert_id: str,
    payload: Optional[AlertResolve] = Body(default=None),
    caller: Caller = Depends(get_caller),
    services: MonitorServices = Depends(get_services),
):
    note = payload.note if payload is not None else None
    return services.alerts.resolve(caller, alert_id, note)
