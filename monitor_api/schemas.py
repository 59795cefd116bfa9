from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .classification.liveness import Liveness


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}


class AlertType(str, Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    CONNECTIVITY = "connectivity"
    MANUAL = "manual"


class Site(BaseModel):
    id: str
    code: str
    name: str


class SensorAssignment(BaseModel):
    id: str
    provider_sensor_id: str
    site_id: str
    sensor_name: str
    location_type: str
    is_active: bool = True
    assigned_by: Optional[str] = None
    created_at: datetime


class GatewayRef(BaseModel):
    id: str
    name: str
    status: Liveness
    last_seen: Optional[datetime] = None


class EnrichedSensorView(BaseModel):
    """Assignment + provider record + latest reading, as returned to callers."""

    id: str
    assignment_id: str
    name: str
    location: str
    site: Optional[Site] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    last_reading_at: Optional[datetime] = None
    status: Liveness
    battery: float
    signal: float
    gateway: Optional[GatewayRef] = None


class Alert(BaseModel):
    id: str
    sensor_id: Optional[str] = None
    site_id: str
    type: str
    severity: Severity
    message: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    location: Optional[str] = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AlertCreate(BaseModel):
    """Manual alert fields (administrators only)."""

    site_id: str
    message: str = Field(..., min_length=1)
    sensor_id: Optional[str] = None
    type: str = AlertType.MANUAL.value
    severity: Severity = Severity.WARNING
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    location: Optional[str] = None


class AlertResolve(BaseModel):
    note: Optional[str] = None


class AlertCount(BaseModel):
    severity: Severity
    resolved: bool
    count: int


class CheckResult(BaseModel):
    evaluated: int
    created: List[Alert] = Field(default_factory=list)


class GatewayStatus(BaseModel):
    id: str
    name: str
    site: Optional[Site] = None
    status: Liveness
    last_seen: Optional[datetime] = None
    signal: float
    average_sensor_signal: Optional[float] = None
    connected_sensors: int
    firmware_version: Optional[str] = None


class GatewayOverview(BaseModel):
    gateways: List[GatewayStatus] = Field(default_factory=list)
    total: int = 0
    online: int = 0
    warning: int = 0
    offline: int = 0
    total_sensors: int = 0


class AssignmentCreate(BaseModel):
    provider_sensor_id: str = Field(..., min_length=1)
    site_id: str
    location_type: str = "main_storage"
    sensor_name: Optional[str] = None


class AutoAssignResult(BaseModel):
    created: List[SensorAssignment] = Field(default_factory=list)
    unresolved_sensor_ids: List[str] = Field(default_factory=list)
    already_assigned: int = 0


class AuditEntry(BaseModel):
    id: str
    user_id: str
    action: str
    resource: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
