"""Tests del motor de alertas.

Tests obligatorios:
1. Lectura fuera de rango → una alerta con valor y umbral
2. Una sola alerta abierta por (sensor, tipo), incluso con evaluaciones concurrentes
3. Resolución supervisada exactamente una vez
4. Alcance por sitio en resolución y listados
"""

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest

from common.config import Settings
from monitor_api.alerts.engine import ACTION_CREATE_ALERT, ACTION_RESOLVE_ALERT, AlertEngine
from monitor_api.alerts.policy import MetricThreshold, ThresholdPolicy
from monitor_api.classification.liveness import Liveness
from monitor_api.errors import AlreadyResolved, Forbidden, InvariantViolation, NotFound
from monitor_api.provider.base import ProviderReading
from monitor_api.schemas import AlertCreate, AlertType, EnrichedSensorView, Severity

from conftest import GFP, GSP, NOW


def make_view(sensor_id="S1", site=GFP, temperature=12.5, humidity=50.0, status=Liveness.ONLINE, **kw):
    return EnrichedSensorView(
        id=sensor_id,
        assignment_id=f"a-{sensor_id}",
        name=kw.pop("name", f"{site.code if site else '??'} Fridge"),
        location=kw.pop("location", "main_storage"),
        site=site,
        temperature=temperature,
        humidity=humidity,
        last_reading_at=kw.pop("last_reading_at", NOW - timedelta(minutes=5)),
        status=status,
        battery=80,
        signal=-60,
        **kw,
    )


@pytest.fixture
def policy(settings):
    return ThresholdPolicy.default(GFP.id, settings)


class _Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now


# =============================================================================
# EVALUACIÓN
# =============================================================================

class TestEvaluate:
    def test_above_max_beyond_margin_is_critical(self, alert_engine, store, policy):
        created = alert_engine.evaluate(make_view(temperature=12.5), policy, now=NOW)

        assert len(created) == 1
        alert = created[0]
        assert alert.type == AlertType.TEMPERATURE.value
        assert alert.severity == Severity.CRITICAL
        assert alert.current_value == 12.5
        assert alert.threshold_value == 8.0
        assert alert.sensor_id == "S1"
        assert alert.site_id == GFP.id
        assert alert.location == "main_storage"
        assert not alert.resolved
        assert "exceeded maximum threshold: 12.5°C (threshold 8°C)" in alert.message
        assert store.get_alert(alert.id) == alert

    def test_above_max_within_margin_is_warning(self, alert_engine, policy):
        (alert,) = alert_engine.evaluate(make_view(temperature=9.0), policy, now=NOW)
        assert alert.severity == Severity.WARNING

    def test_below_min(self, alert_engine, policy):
        (alert,) = alert_engine.evaluate(make_view(temperature=1.0), policy, now=NOW)
        assert alert.threshold_value == 2.0
        assert "fell below minimum" in alert.message
        assert alert.severity == Severity.WARNING

    def test_humidity_breach(self, alert_engine, policy):
        (alert,) = alert_engine.evaluate(make_view(temperature=5.0, humidity=95.0), policy, now=NOW)
        assert alert.type == AlertType.HUMIDITY.value
        assert alert.severity == Severity.CRITICAL
        assert alert.threshold_value == 80.0

    def test_both_metrics_breached(self, alert_engine, policy):
        created = alert_engine.evaluate(make_view(temperature=12.5, humidity=95.0), policy, now=NOW)
        assert sorted(a.type for a in created) == ["humidity", "temperature"]

    def test_in_range_creates_nothing(self, alert_engine, policy):
        assert alert_engine.evaluate(make_view(temperature=5.0, humidity=40.0), policy, now=NOW) == []

    def test_no_reading_creates_nothing(self, alert_engine, policy):
        assert alert_engine.evaluate(make_view(temperature=None, humidity=None), policy, now=NOW) == []

    def test_existing_open_alert_is_not_duplicated(self, alert_engine, store, policy):
        first = alert_engine.evaluate(make_view(), policy, now=NOW)
        second = alert_engine.evaluate(make_view(temperature=13.0), policy, now=NOW)
        assert len(first) == 1
        assert second == []
        assert len(store.list_alerts(resolved=False)) == 1

    def test_offline_sensor_gets_connectivity_alert(self, alert_engine, policy):
        view = make_view(temperature=12.5, status=Liveness.OFFLINE)
        (alert,) = alert_engine.evaluate(view, policy, now=NOW)
        assert alert.type == AlertType.CONNECTIVITY.value
        assert alert.severity == Severity.WARNING
        assert "offline" in alert.message

    def test_offline_alert_can_be_disabled(self, store, scope_filter, audit):
        engine = AlertEngine(store, scope_filter, audit, Settings(alert_on_offline=False))
        policy = engine.policy_for(GFP.id)
        view = make_view(status=Liveness.OFFLINE, last_reading_at=None, temperature=None)
        assert engine.evaluate(view, policy, now=NOW) == []

    def test_view_without_site_is_skipped(self, alert_engine, policy):
        assert alert_engine.evaluate(make_view(site=None), policy, now=NOW) == []

    def test_site_override_replaces_default(self, alert_engine, store):
        store.set_threshold(GFP.id, MetricThreshold("temperature", 2.0, 15.0, 2.0))
        policy = alert_engine.policy_for(GFP.id)
        assert policy.threshold_for("temperature").max_value == 15.0
        assert policy.threshold_for("humidity").max_value == 80.0
        assert alert_engine.evaluate(make_view(temperature=12.5), policy, now=NOW) == []

    def test_new_alert_after_resolution(self, alert_engine, admin, policy):
        (first,) = alert_engine.evaluate(make_view(), policy, now=NOW)
        alert_engine.resolve(admin, first.id, "moved stock")
        (second,) = alert_engine.evaluate(make_view(), policy, now=NOW)
        assert second.id != first.id


class TestConcurrentEvaluation:
    def test_parallel_evaluations_open_exactly_one_alert(self, alert_engine, store, policy):
        view = make_view()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: alert_engine.evaluate(view, policy, now=NOW), range(16)))

        assert sum(len(r) for r in results) == 1
        open_alerts = store.list_alerts(resolved=False, alert_type="temperature")
        assert len(open_alerts) == 1


# =============================================================================
# CHEQUEO COMPLETO
# =============================================================================

class TestCheckAllSensors:
    @pytest.mark.asyncio
    async def test_scenario_online_breach(self, alert_engine, admin, assigned, now):
        result = await alert_engine.check_all_sensors(admin, now=now)

        assert result.evaluated == 2
        assert len(result.created) == 1
        alert = result.created[0]
        assert alert.sensor_id == "S1"
        assert alert.current_value == 12.5
        assert alert.threshold_value == 8.0
        assert alert.severity == Severity.CRITICAL

    @pytest.mark.asyncio
    async def test_repeated_checks_do_not_duplicate(self, alert_engine, store, admin, assigned, now):
        await alert_engine.check_all_sensors(admin, now=now)
        again = await alert_engine.check_all_sensors(admin, now=now)
        assert again.created == []
        assert len(store.list_alerts(resolved=False)) == 1

    @pytest.mark.asyncio
    async def test_check_is_scoped_to_caller(self, alert_engine, provider, store, gfp_user, assigned, now):
        provider.add_reading("S2", ProviderReading(now - timedelta(minutes=1), 30.0, 40.0))
        result = await alert_engine.check_all_sensors(gfp_user, now=now)
        assert result.evaluated == 1
        assert {a.site_id for a in store.list_alerts()} == {GFP.id}

    @pytest.mark.asyncio
    async def test_event_loop_responsive_while_db_locked(self, alert_engine, engine, admin, assigned, now):
        locked = threading.Event()

        def hold_write_lock():
            with engine.begin():  # BEGIN IMMEDIATE
                locked.set()
                time.sleep(1.0)

        holder = threading.Thread(target=hold_write_lock)
        holder.start()
        assert locked.wait(5)

        gaps = []
        done = asyncio.Event()

        async def heartbeat():
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.02)
                current = time.monotonic()
                gaps.append(current - last)
                last = current

        beat = asyncio.create_task(heartbeat())
        try:
            result = await alert_engine.check_all_sensors(admin, now=now)
        finally:
            done.set()
            await beat
            holder.join()

        assert len(result.created) == 1
        assert gaps and max(gaps) < 0.5

    @pytest.mark.asyncio
    async def test_requires_aggregator(self, store, scope_filter, audit, admin):
        engine = AlertEngine(store, scope_filter, audit)
        with pytest.raises(RuntimeError):
            await engine.check_all_sensors(admin)


# =============================================================================
# RESOLUCIÓN
# =============================================================================

class TestResolve:
    def test_resolve_once_then_already_resolved(self, store, scope_filter, audit, settings, gfp_user):
        clock = _Clock(NOW)
        engine = AlertEngine(store, scope_filter, audit, settings, clock=clock)
        (alert,) = engine.evaluate(make_view(), engine.policy_for(GFP.id), now=NOW)

        clock.now = NOW + timedelta(minutes=10)
        resolved = engine.resolve(gfp_user, alert.id, "adjusted thermostat")
        assert resolved.resolved is True
        assert resolved.resolved_by == "u1"
        assert resolved.resolved_note == "adjusted thermostat"
        assert resolved.resolved_at == NOW + timedelta(minutes=10)

        clock.now = NOW + timedelta(minutes=20)
        with pytest.raises(AlreadyResolved):
            engine.resolve(gfp_user, alert.id, "second try")

        unchanged = store.get_alert(alert.id)
        assert unchanged.resolved_at == NOW + timedelta(minutes=10)
        assert unchanged.resolved_by == "u1"
        assert unchanged.resolved_note == "adjusted thermostat"

    def test_resolution_is_audited(self, alert_engine, store, gfp_user, policy):
        (alert,) = alert_engine.evaluate(make_view(), policy, now=NOW)
        alert_engine.resolve(gfp_user, alert.id, "adjusted thermostat")

        (entry,) = store.list_audit(f"alert:{alert.id}")
        assert entry.action == ACTION_RESOLVE_ALERT
        assert entry.user_id == "u1"
        assert entry.metadata["note"] == "adjusted thermostat"

    def test_lost_race_is_already_resolved(self, alert_engine, store, admin, policy):
        (alert,) = alert_engine.evaluate(make_view(), policy, now=NOW)
        with patch.object(store, "resolve_alert", return_value=False):
            with pytest.raises(AlreadyResolved):
                alert_engine.resolve(admin, alert.id)
        assert store.list_audit(f"alert:{alert.id}") == []

    def test_unknown_alert(self, alert_engine, admin):
        with pytest.raises(NotFound):
            alert_engine.resolve(admin, "missing")

    def test_other_site_is_forbidden(self, alert_engine, store, gfp_user, settings):
        policy = ThresholdPolicy.default(GSP.id, settings)
        (alert,) = alert_engine.evaluate(make_view("S2", site=GSP), policy, now=NOW)
        with pytest.raises(Forbidden):
            alert_engine.resolve(gfp_user, alert.id)
        assert store.get_alert(alert.id).resolved is False


# =============================================================================
# ALERTAS MANUALES
# =============================================================================

class TestCreate:
    def test_admin_creates_manual_alert(self, alert_engine, store, admin):
        alert = alert_engine.create(admin, AlertCreate(site_id=GFP.id, message="Door left open"))
        assert alert.type == AlertType.MANUAL.value
        assert alert.severity == Severity.WARNING
        assert alert.sensor_id is None
        (entry,) = store.list_audit(f"alert:{alert.id}")
        assert entry.action == ACTION_CREATE_ALERT

    def test_site_level_alerts_do_not_collide(self, alert_engine, admin):
        a = alert_engine.create(admin, AlertCreate(site_id=GFP.id, message="one"))
        b = alert_engine.create(admin, AlertCreate(site_id=GFP.id, message="two"))
        assert a.id != b.id

    def test_duplicate_open_alert_is_invariant_violation(self, alert_engine, admin, policy):
        (existing,) = alert_engine.evaluate(make_view(), policy, now=NOW)
        fields = AlertCreate(site_id=GFP.id, sensor_id="S1", type="temperature", message="manual dup")
        with pytest.raises(InvariantViolation) as exc:
            alert_engine.create(admin, fields)
        assert exc.value.existing_alert_id == existing.id
        assert exc.value.status_code == 409

    def test_non_admin_is_forbidden(self, alert_engine, gfp_user):
        with pytest.raises(Forbidden):
            alert_engine.create(gfp_user, AlertCreate(site_id=GFP.id, message="x"))

    def test_unknown_site(self, alert_engine, admin):
        with pytest.raises(NotFound):
            alert_engine.create(admin, AlertCreate(site_id="site-xxx", message="x"))


# =============================================================================
# LISTADOS
# =============================================================================

class TestQueries:
    @pytest.fixture
    def seeded(self, alert_engine, admin, settings):
        gfp_policy = ThresholdPolicy.default(GFP.id, settings)
        gsp_policy = ThresholdPolicy.default(GSP.id, settings)
        (resolved,) = alert_engine.evaluate(make_view("S0", temperature=20.0), gfp_policy, now=NOW)
        alert_engine.resolve(admin, resolved.id)
        (warning,) = alert_engine.evaluate(make_view("S1", temperature=9.0), gfp_policy, now=NOW)
        (critical,) = alert_engine.evaluate(make_view("S3", temperature=15.0), gfp_policy, now=NOW)
        (other,) = alert_engine.evaluate(make_view("S2", site=GSP, temperature=1.0), gsp_policy, now=NOW)
        return resolved, warning, critical, other

    def test_ordering_unresolved_then_severity(self, alert_engine, admin, seeded):
        resolved, warning, critical, other = seeded
        ids = [a.id for a in alert_engine.list_alerts(admin, site_id=GFP.id)]
        assert ids == [critical.id, warning.id, resolved.id]

    def test_filters(self, alert_engine, admin, seeded):
        resolved, warning, critical, other = seeded
        assert [a.id for a in alert_engine.list_alerts(admin, resolved=True)] == [resolved.id]
        assert [a.id for a in alert_engine.list_alerts(admin, severity="critical", resolved=False)] == [critical.id]
        assert alert_engine.list_alerts(admin, alert_type="humidity") == []

    def test_user_sees_granted_sites_only(self, alert_engine, gfp_user, seeded):
        resolved, warning, critical, other = seeded
        ids = {a.id for a in alert_engine.list_alerts(gfp_user)}
        assert other.id not in ids
        assert ids == {resolved.id, warning.id, critical.id}

    def test_user_asking_for_other_site_is_forbidden(self, alert_engine, gfp_user, seeded):
        with pytest.raises(Forbidden):
            alert_engine.list_alerts(gfp_user, site_id=GSP.id)

    def test_user_without_grants_sees_nothing(self, alert_engine, no_grants_user, seeded):
        assert alert_engine.list_alerts(no_grants_user) == []
        assert alert_engine.summary(no_grants_user) == []

    def test_summary(self, alert_engine, admin, gfp_user, seeded):
        counts = {(c.severity, c.resolved): c.count for c in alert_engine.summary(admin)}
        assert counts == {
            (Severity.CRITICAL, False): 1,
            (Severity.WARNING, False): 2,
            (Severity.CRITICAL, True): 1,
        }
        user_counts = {(c.severity, c.resolved): c.count for c in alert_engine.summary(gfp_user)}
        assert user_counts[(Severity.WARNING, False)] == 1
