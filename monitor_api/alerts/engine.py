"""Alert Engine: threshold evaluation, manual alerts and supervised resolution.

Lifecycle per (sensor_id, type): None -> Open -> Resolved. Resolved is
terminal, and nothing here resolves automatically: a reading returning to
range leaves the alert open until a person resolves it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from common.config import Settings

from ..auth.authorization import Caller
from ..auth.scope import AccessScopeFilter
from ..classification.liveness import Liveness
from ..errors import AlreadyResolved, InvariantViolation, NotFound
from ..infrastructure.audit.audit_logger import AuditLogger
from ..infrastructure.concurrency import run_blocking
from ..schemas import (
    Alert,
    AlertCount,
    AlertCreate,
    AlertType,
    CheckResult,
    EnrichedSensorView,
    Severity,
)
from .policy import METRIC_HUMIDITY, METRIC_TEMPERATURE, Breach, ThresholdPolicy, find_breach

logger = logging.getLogger(__name__)

ACTION_CREATE_ALERT = "CREATE_ALERT"
ACTION_RESOLVE_ALERT = "RESOLVE_ALERT"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_alert_id() -> str:
    return uuid.uuid4().hex


class AlertEngine:
    def __init__(
        self,
        store,
        scope_filter: AccessScopeFilter,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        aggregator=None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._store = store
        self._scope = scope_filter
        self._audit = audit
        self._settings = settings or Settings()
        self._aggregator = aggregator
        self._clock = clock

    # ------------------------------------------------------------ policy

    def policy_for(self, site_id: str) -> ThresholdPolicy:
        """Stored per-site thresholds layered over the configured defaults."""
        return ThresholdPolicy.default(site_id, self._settings).with_overrides(
            self._store.thresholds_for_site(site_id)
        )

    # -------------------------------------------------------- evaluation

    def _build_alert(
        self,
        view: EnrichedSensorView,
        alert_type: str,
        severity: Severity,
        message: str,
        now: datetime,
        current_value: Optional[float] = None,
        threshold_value: Optional[float] = None,
    ) -> Alert:
        return Alert(
            id=_new_alert_id(),
            sensor_id=view.id,
            site_id=view.site.id,
            type=alert_type,
            severity=severity,
            message=message,
            current_value=current_value,
            threshold_value=threshold_value,
            location=view.location,
            created_at=now,
            updated_at=now,
        )

    def _open(self, alert: Alert) -> Optional[Alert]:
        stored, created = self._store.insert_alert_if_no_open(alert)
        if not created:
            logger.debug(
                "[ALERTS] Open %s alert %s already exists for sensor %s",
                alert.type, stored.id, alert.sensor_id,
            )
            return None
        logger.info(
            "[ALERTS] Created %s %s alert %s sensor=%s site=%s value=%s threshold=%s",
            stored.severity.value, stored.type, stored.id, stored.sensor_id,
            stored.site_id, stored.current_value, stored.threshold_value,
        )
        return stored

    def evaluate(
        self,
        view: EnrichedSensorView,
        policy: ThresholdPolicy,
        now: Optional[datetime] = None,
    ) -> List[Alert]:
        """Open alerts for the breaches in ``view``; returns only newly created ones."""
        if view.site is None:
            logger.warning("[ALERTS] Sensor %s has no resolved site; skipping evaluation", view.id)
            return []

        now = now or self._clock()
        created: List[Alert] = []

        if view.status == Liveness.OFFLINE:
            if policy.alert_on_offline:
                if view.last_reading_at is not None:
                    detail = f"last reading at {view.last_reading_at.isoformat()}"
                else:
                    detail = f"no reading in the last {self._settings.readings_window_minutes} minutes"
                alert = self._open(
                    self._build_alert(
                        view,
                        AlertType.CONNECTIVITY.value,
                        Severity.WARNING,
                        f"Sensor '{view.name}' is offline: {detail}",
                        now,
                    )
                )
                if alert is not None:
                    created.append(alert)
            return created

        for metric, value in ((METRIC_TEMPERATURE, view.temperature), (METRIC_HUMIDITY, view.humidity)):
            threshold = policy.threshold_for(metric)
            if threshold is None:
                continue
            breach: Optional[Breach] = find_breach(threshold, value)
            if breach is None:
                continue
            alert = self._open(
                self._build_alert(
                    view,
                    metric,
                    policy.severity_for(breach),
                    f"{breach.describe()} at {view.name}",
                    now,
                    current_value=breach.value,
                    threshold_value=breach.threshold,
                )
            )
            if alert is not None:
                created.append(alert)
        return created

    async def check_all_sensors(self, caller: Caller, now: Optional[datetime] = None) -> CheckResult:
        """Evaluate every assigned sensor visible to ``caller``.

        Safe to run concurrently with itself: duplicate opens are absorbed by
        the store's conditional insert.
        """
        if self._aggregator is None:
            raise RuntimeError("AlertEngine was built without an aggregator")

        views = await self._aggregator.aggregate(caller, now=now)
        created = await run_blocking(self._evaluate_views, views, now)

        logger.info(
            "[ALERTS] Sensor check by %s: evaluated=%d created=%d",
            caller.user_id, len(views), len(created),
        )
        return CheckResult(evaluated=len(views), created=created)

    def _evaluate_views(self, views: List[EnrichedSensorView], now: Optional[datetime]) -> List[Alert]:
        policies: Dict[str, ThresholdPolicy] = {}
        created: List[Alert] = []
        for view in views:
            if view.site is None:
                continue
            policy = policies.get(view.site.id)
            if policy is None:
                policy = policies[view.site.id] = self.policy_for(view.site.id)
            created.extend(self.evaluate(view, policy, now=now))
        return created

    # ------------------------------------------------------ manual paths

    def create(self, caller: Caller, fields: AlertCreate) -> Alert:
        self._scope.require_administrator(caller, "create alerts")
        if self._store.get_site(fields.site_id) is None:
            raise NotFound("Site", fields.site_id)

        now = self._clock()
        alert = Alert(
            id=_new_alert_id(),
            sensor_id=fields.sensor_id,
            site_id=fields.site_id,
            type=fields.type,
            severity=fields.severity,
            message=fields.message,
            current_value=fields.current_value,
            threshold_value=fields.threshold_value,
            location=fields.location,
            created_at=now,
            updated_at=now,
        )
        stored, created = self._store.insert_alert_if_no_open(alert)
        if not created:
            raise InvariantViolation(fields.sensor_id or "", fields.type, stored.id)

        self._audit.record(
            caller.user_id,
            ACTION_CREATE_ALERT,
            f"alert:{stored.id}",
            {"site_id": stored.site_id, "type": stored.type, "severity": stored.severity.value},
            at=now,
        )
        logger.info("[ALERTS] Manual alert %s created by %s", stored.id, caller.user_id)
        return stored

    def resolve(self, caller: Caller, alert_id: str, note: Optional[str] = None) -> Alert:
        alert = self._store.get_alert(alert_id)
        if alert is None:
            raise NotFound("Alert", alert_id)
        self._scope.require_site(caller, alert.site_id)
        if alert.resolved:
            raise AlreadyResolved(alert_id)

        now = self._clock()
        if not self._store.resolve_alert(alert_id, caller.user_id, note, now):
            # A concurrent resolve won the race.
            raise AlreadyResolved(alert_id)

        self._audit.record(
            caller.user_id,
            ACTION_RESOLVE_ALERT,
            f"alert:{alert_id}",
            {"note": note, "site_id": alert.site_id, "sensor_id": alert.sensor_id},
            at=now,
        )
        logger.info("[ALERTS] Alert %s resolved by %s", alert_id, caller.user_id)
        return self._store.get_alert(alert_id)

    # ----------------------------------------------------------- queries

    def list_alerts(
        self,
        caller: Caller,
        *,
        site_id: Optional[str] = None,
        resolved: Optional[bool] = None,
        severity: Optional[str] = None,
        alert_type: Optional[str] = None,
    ) -> List[Alert]:
        """Unresolved first, then most severe, then newest."""
        if site_id is not None:
            scope = self._scope.require_site(caller, site_id)
        else:
            scope = self._scope.visible_sites(caller)
        return self._store.list_alerts(
            scope.site_ids,
            site_id=site_id,
            resolved=resolved,
            severity=severity,
            alert_type=alert_type,
        )

    def summary(self, caller: Caller) -> List[AlertCount]:
        scope = self._scope.visible_sites(caller)
        return self._store.alert_counts(scope.site_ids)
