"""Monitor repository: persistence operations.

Each method acquires a connection with ``engine.begin()`` and releases it
before returning; no connection outlives one logical operation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import and_, case, delete, func, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from ..alerts.policy import MetricThreshold
from ..classification.liveness import as_utc
from ..schemas import Alert, AlertCount, AuditEntry, SensorAssignment, Severity, Site
from .tables import alerts, audit_log, sensor_assignments, site_access_grants, site_thresholds, sites

logger = logging.getLogger(__name__)

SiteIds = Optional[FrozenSet[str]]

_SEVERITY_ORDER = case(
    {Severity.CRITICAL.value: 2, Severity.WARNING.value: 1, Severity.INFO.value: 0},
    value=alerts.c.severity,
    else_=0,
)

# Attempts for the conditional insert when the conflicting open alert is
# resolved between the conflict and the lookup.
_OPEN_ALERT_INSERT_ATTEMPTS = 3


def _ts(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def _row_to_site(row: Any) -> Site:
    return Site(id=row.id, code=row.code, name=row.name)


def _row_to_assignment(row: Any) -> SensorAssignment:
    return SensorAssignment(
        id=row.id,
        provider_sensor_id=row.provider_sensor_id,
        site_id=row.site_id,
        sensor_name=row.sensor_name,
        location_type=row.location_type,
        is_active=bool(row.is_active),
        assigned_by=row.assigned_by,
        created_at=_ts(row.created_at),
    )


def _row_to_alert(row: Any) -> Alert:
    return Alert(
        id=row.id,
        sensor_id=row.sensor_id,
        site_id=row.site_id,
        type=row.type,
        severity=Severity(row.severity),
        message=row.message,
        current_value=row.current_value,
        threshold_value=row.threshold_value,
        location=row.location,
        resolved=bool(row.resolved),
        resolved_at=_ts(row.resolved_at),
        resolved_by=row.resolved_by,
        resolved_note=row.resolved_note,
        created_at=_ts(row.created_at),
        updated_at=_ts(row.updated_at),
    )


def _alert_values(alert: Alert) -> Dict[str, Any]:
    values = alert.model_dump()
    values["severity"] = alert.severity.value
    return values


class MonitorStore:
    def __init__(self, engine: Engine):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------ sites

    def create_site(self, site: Site) -> Site:
        with self._engine.begin() as conn:
            conn.execute(insert(sites).values(id=site.id, code=site.code, name=site.name))
        return site

    def get_site(self, site_id: str) -> Optional[Site]:
        with self._engine.begin() as conn:
            row = conn.execute(select(sites).where(sites.c.id == site_id)).fetchone()
        return _row_to_site(row) if row else None

    def list_sites(self, site_ids: SiteIds = None) -> List[Site]:
        if site_ids is not None and not site_ids:
            return []
        stmt = select(sites).order_by(sites.c.name)
        if site_ids is not None:
            stmt = stmt.where(sites.c.id.in_(sorted(site_ids)))
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_site(r) for r in rows]

    # ----------------------------------------------------------------- grants

    def grant_site(self, user_id: str, site_id: str) -> None:
        with self._engine.begin() as conn:
            exists = conn.execute(
                select(site_access_grants.c.user_id).where(
                    and_(
                        site_access_grants.c.user_id == user_id,
                        site_access_grants.c.site_id == site_id,
                    )
                )
            ).fetchone()
            if exists is None:
                conn.execute(insert(site_access_grants).values(user_id=user_id, site_id=site_id))

    def granted_site_ids(self, user_id: str) -> List[str]:
        with self._engine.begin() as conn:
            rows = conn.execute(
                select(site_access_grants.c.site_id).where(site_access_grants.c.user_id == user_id)
            ).fetchall()
        return [r.site_id for r in rows]

    # ------------------------------------------------------------ assignments

    def create_assignment(self, assignment: SensorAssignment) -> Tuple[SensorAssignment, int]:
        """Insert an active assignment; earlier active ones for the same sensor are deactivated.

        Returns:
            (assignment, number of assignments it replaced)
        """
        with self._engine.begin() as conn:
            replaced = conn.execute(
                update(sensor_assignments)
                .where(
                    and_(
                        sensor_assignments.c.provider_sensor_id == assignment.provider_sensor_id,
                        sensor_assignments.c.is_active == True,  # noqa: E712
                    )
                )
                .values(is_active=False)
            ).rowcount
            conn.execute(insert(sensor_assignments).values(**assignment.model_dump()))
        if replaced:
            logger.info(
                "[ASSIGN] Sensor %s reassigned; %d previous assignment(s) deactivated",
                assignment.provider_sensor_id, replaced,
            )
        return assignment, int(replaced or 0)

    def get_assignment(self, assignment_id: str) -> Optional[SensorAssignment]:
        with self._engine.begin() as conn:
            row = conn.execute(
                select(sensor_assignments).where(sensor_assignments.c.id == assignment_id)
            ).fetchone()
        return _row_to_assignment(row) if row else None

    def deactivate_assignment(self, assignment_id: str) -> bool:
        with self._engine.begin() as conn:
            changed = conn.execute(
                update(sensor_assignments)
                .where(
                    and_(
                        sensor_assignments.c.id == assignment_id,
                        sensor_assignments.c.is_active == True,  # noqa: E712
                    )
                )
                .values(is_active=False)
            ).rowcount
        return changed == 1

    def list_active_assignments(self, site_ids: SiteIds = None) -> List[SensorAssignment]:
        if site_ids is not None and not site_ids:
            return []
        stmt = (
            select(sensor_assignments)
            .where(sensor_assignments.c.is_active == True)  # noqa: E712
            .order_by(sensor_assignments.c.created_at, sensor_assignments.c.id)
        )
        if site_ids is not None:
            stmt = stmt.where(sensor_assignments.c.site_id.in_(sorted(site_ids)))
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_assignment(r) for r in rows]

    # ------------------------------------------------------------- thresholds

    def set_threshold(self, site_id: str, threshold: MetricThreshold) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                delete(site_thresholds).where(
                    and_(
                        site_thresholds.c.site_id == site_id,
                        site_thresholds.c.metric == threshold.metric,
                    )
                )
            )
            conn.execute(
                insert(site_thresholds).values(
                    site_id=site_id,
                    metric=threshold.metric,
                    min_value=threshold.min_value,
                    max_value=threshold.max_value,
                    critical_margin=threshold.critical_margin,
                )
            )

    def thresholds_for_site(self, site_id: str) -> List[MetricThreshold]:
        with self._engine.begin() as conn:
            rows = conn.execute(
                select(site_thresholds).where(site_thresholds.c.site_id == site_id)
            ).fetchall()
        return [
            MetricThreshold(
                metric=r.metric,
                min_value=r.min_value,
                max_value=r.max_value,
                critical_margin=float(r.critical_margin),
            )
            for r in rows
        ]

    # ----------------------------------------------------------------- alerts

    def find_open_alert(self, sensor_id: str, alert_type: str) -> Optional[Alert]:
        with self._engine.begin() as conn:
            row = conn.execute(
                select(alerts).where(
                    and_(
                        alerts.c.sensor_id == sensor_id,
                        alerts.c.type == alert_type,
                        alerts.c.resolved == False,  # noqa: E712
                    )
                )
            ).fetchone()
        return _row_to_alert(row) if row else None

    def insert_alert_if_no_open(self, alert: Alert) -> Tuple[Alert, bool]:
        """Conditional insert guarded by ``uq_alerts_open_sensor_type``.

        Returns:
            (alert, True) when inserted, (existing open alert, False) otherwise
        """
        if alert.sensor_id is None:
            with self._engine.begin() as conn:
                conn.execute(insert(alerts).values(**_alert_values(alert)))
            return alert, True

        for attempt in range(1, _OPEN_ALERT_INSERT_ATTEMPTS + 1):
            existing = self.find_open_alert(alert.sensor_id, alert.type)
            if existing is not None:
                return existing, False
            try:
                with self._engine.begin() as conn:
                    conn.execute(insert(alerts).values(**_alert_values(alert)))
                return alert, True
            except IntegrityError:
                # Another writer opened the alert between the lookup and the insert.
                logger.info(
                    "[ALERTS] Concurrent open alert for sensor=%s type=%s (attempt %d/%d)",
                    alert.sensor_id, alert.type, attempt, _OPEN_ALERT_INSERT_ATTEMPTS,
                )
        existing = self.find_open_alert(alert.sensor_id, alert.type)
        if existing is None:
            raise RuntimeError(
                f"Open alert insert for sensor {alert.sensor_id!r} type {alert.type!r} "
                f"kept conflicting without a visible open alert"
            )
        return existing, False

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._engine.begin() as conn:
            row = conn.execute(select(alerts).where(alerts.c.id == alert_id)).fetchone()
        return _row_to_alert(row) if row else None

    def resolve_alert(
        self,
        alert_id: str,
        resolved_by: str,
        note: Optional[str],
        resolved_at: datetime,
    ) -> bool:
        """Conditional update; False when the alert was already resolved (or missing)."""
        with self._engine.begin() as conn:
            changed = conn.execute(
                update(alerts)
                .where(and_(alerts.c.id == alert_id, alerts.c.resolved == False))  # noqa: E712
                .values(
                    resolved=True,
                    resolved_at=resolved_at,
                    resolved_by=resolved_by,
                    resolved_note=note,
                    updated_at=resolved_at,
                )
            ).rowcount
        return changed == 1

    def list_alerts(
        self,
        site_ids: SiteIds = None,
        *,
        site_id: Optional[str] = None,
        resolved: Optional[bool] = None,
        severity: Optional[str] = None,
        alert_type: Optional[str] = None,
    ) -> List[Alert]:
        if site_ids is not None and not site_ids:
            return []
        stmt = select(alerts)
        if site_ids is not None:
            stmt = stmt.where(alerts.c.site_id.in_(sorted(site_ids)))
        if site_id is not None:
            stmt = stmt.where(alerts.c.site_id == site_id)
        if resolved is not None:
            stmt = stmt.where(alerts.c.resolved == resolved)
        if severity is not None:
            stmt = stmt.where(alerts.c.severity == severity)
        if alert_type is not None:
            stmt = stmt.where(alerts.c.type == alert_type)
        stmt = stmt.order_by(
            alerts.c.resolved.asc(),
            _SEVERITY_ORDER.desc(),
            alerts.c.created_at.desc(),
        )
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_alert(r) for r in rows]

    def alert_counts(self, site_ids: SiteIds = None) -> List[AlertCount]:
        if site_ids is not None and not site_ids:
            return []
        stmt = select(alerts.c.severity, alerts.c.resolved, func.count().label("n")).group_by(
            alerts.c.severity, alerts.c.resolved
        )
        if site_ids is not None:
            stmt = stmt.where(alerts.c.site_id.in_(sorted(site_ids)))
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).fetchall()
        counts = [
            AlertCount(severity=Severity(r.severity), resolved=bool(r.resolved), count=int(r.n))
            for r in rows
        ]
        counts.sort(key=lambda c: (c.resolved, -c.severity.rank))
        return counts

    # ------------------------------------------------------------------ audit

    def insert_audit(self, entry: AuditEntry) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(audit_log).values(
                    id=entry.id,
                    user_id=entry.user_id,
                    action=entry.action,
                    resource=entry.resource,
                    details=entry.metadata,
                    created_at=entry.created_at,
                )
            )

    def list_audit(self, resource: Optional[str] = None) -> List[AuditEntry]:
        stmt = select(audit_log).order_by(audit_log.c.created_at, audit_log.c.id)
        if resource is not None:
            stmt = stmt.where(audit_log.c.resource == resource)
        with self._engine.begin() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            AuditEntry(
                id=r.id,
                user_id=r.user_id,
                action=r.action,
                resource=r.resource,
                metadata=r.details or {},
                created_at=_ts(r.created_at),
            )
            for r in rows
        ]
