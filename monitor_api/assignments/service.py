"""Sensor assignment management (administrators).

An assignment binds a provider sensor id to a site and a location label.
A sensor has at most one active assignment: assigning it again
deactivates the previous one (last wins).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..auth.authorization import Caller
from ..auth.scope import AccessScopeFilter
from ..errors import NotFound
from ..identity.resolver import SiteCodeIndex
from ..infrastructure.audit.audit_logger import AuditLogger
from ..infrastructure.concurrency import run_blocking
from ..provider.base import ProviderSensorRecord, TelemetryProvider
from ..schemas import AssignmentCreate, AutoAssignResult, SensorAssignment

logger = logging.getLogger(__name__)

ACTION_CREATE_ASSIGNMENT = "CREATE_SENSOR_ASSIGNMENT"
ACTION_CREATE_ASSIGNMENTS = "CREATE_SENSOR_ASSIGNMENTS"
ACTION_DEACTIVATE_ASSIGNMENT = "DEACTIVATE_SENSOR_ASSIGNMENT"

DEFAULT_LOCATION_TYPE = "main_storage"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentService:
    def __init__(
        self,
        store,
        provider: Optional[TelemetryProvider],
        scope_filter: AccessScopeFilter,
        audit: AuditLogger,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._store = store
        self._provider = provider
        self._scope = scope_filter
        self._audit = audit
        self._clock = clock

    def assign(self, caller: Caller, fields: AssignmentCreate) -> SensorAssignment:
        self._scope.require_administrator(caller, "assign sensors")
        if self._store.get_site(fields.site_id) is None:
            raise NotFound("Site", fields.site_id)

        sensor_id = fields.provider_sensor_id.strip()
        assignment = SensorAssignment(
            id=uuid.uuid4().hex,
            provider_sensor_id=sensor_id,
            site_id=fields.site_id,
            sensor_name=fields.sensor_name or f"Sensor {sensor_id[-4:]}",
            location_type=fields.location_type,
            is_active=True,
            assigned_by=caller.user_id,
            created_at=self._clock(),
        )
        assignment, replaced = self._store.create_assignment(assignment)
        self._audit.record(
            caller.user_id,
            ACTION_CREATE_ASSIGNMENT,
            f"sensor_assignment:{assignment.id}",
            {
                "provider_sensor_id": sensor_id,
                "site_id": assignment.site_id,
                "location_type": assignment.location_type,
                "replaced": replaced,
            },
        )
        return assignment

    def deactivate(self, caller: Caller, assignment_id: str) -> SensorAssignment:
        self._scope.require_administrator(caller, "deactivate sensor assignments")
        existing = self._store.get_assignment(assignment_id)
        if existing is None:
            raise NotFound("SensorAssignment", assignment_id)

        if self._store.deactivate_assignment(assignment_id):
            self._audit.record(
                caller.user_id,
                ACTION_DEACTIVATE_ASSIGNMENT,
                f"sensor_assignment:{assignment_id}",
                {"provider_sensor_id": existing.provider_sensor_id, "site_id": existing.site_id},
            )
        return self._store.get_assignment(assignment_id)

    async def auto_assign(
        self,
        caller: Caller,
        location_type: str = DEFAULT_LOCATION_TYPE,
    ) -> AutoAssignResult:
        """Assign every unassigned provider sensor whose name names a known site.

        Sensors whose name matches no site are reported, not guessed.
        """
        self._scope.require_administrator(caller, "assign sensors")
        if self._provider is None:
            raise RuntimeError("AssignmentService was built without a provider")

        provider_sensors = await self._provider.list_sensors()
        return await run_blocking(self._apply_auto_assign, caller, provider_sensors, location_type)

    def _apply_auto_assign(
        self,
        caller: Caller,
        provider_sensors: Dict[str, ProviderSensorRecord],
        location_type: str,
    ) -> AutoAssignResult:
        index = SiteCodeIndex(self._store.list_sites())
        already = {a.provider_sensor_id for a in self._store.list_active_assignments()}

        result = AutoAssignResult()
        for sensor_id in sorted(provider_sensors):
            record = provider_sensors[sensor_id]
            if sensor_id in already:
                result.already_assigned += 1
                continue
            site = index.resolve(record.name)
            if site is None:
                result.unresolved_sensor_ids.append(sensor_id)
                continue
            assignment = SensorAssignment(
                id=uuid.uuid4().hex,
                provider_sensor_id=sensor_id,
                site_id=site.id,
                sensor_name=record.name,
                location_type=location_type,
                is_active=True,
                assigned_by=caller.user_id,
                created_at=self._clock(),
            )
            created, _ = self._store.create_assignment(assignment)
            result.created.append(created)

        self._audit.record(
            caller.user_id,
            ACTION_CREATE_ASSIGNMENTS,
            "sensor_assignments",
            {
                "created_count": len(result.created),
                "assignments": [
                    {"provider_sensor_id": a.provider_sensor_id, "site_id": a.site_id}
                    for a in result.created
                ],
                "unresolved": result.unresolved_sensor_ids,
            },
        )
        logger.info(
            "[ASSIGN] Auto-assign: created=%d unresolved=%d already=%d",
            len(result.created), len(result.unresolved_sensor_ids), result.already_assigned,
        )
        return result
