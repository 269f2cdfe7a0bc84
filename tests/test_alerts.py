"""Tests for alert evaluation, cooldowns, offline timers and the alert log."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from conftest import make_device

from printwatch.config import AlertSettings, NotificationSchedule, NotificationSettings, Settings
from printwatch.core.alerts import AlertEngine, is_threshold_supply
from printwatch.core.events import EventBus
from printwatch.core.models import AlertType, EventType, Supply, SupplyType


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def dispatch(self, subject: str, message: str, alert_type: str) -> bool:
        self.sent.append((subject, message, alert_type))
        return True


def _types(events):
    return [e.type for e in events]


def test_threshold_supplies():
    assert is_threshold_supply("Black Toner Cartridge")
    assert is_threshold_supply("Cyan Ink")
    assert not is_threshold_supply("Toner Drum Unit")
    assert not is_threshold_supply("Fuser Kit")
    assert not is_threshold_supply("Transfer Belt")


def test_cooldown_suppresses_repeat_supply_alerts(settings, clock):
    engine = AlertEngine(settings, clock=clock)

    assert engine.evaluate([make_device(toner=25)]) == []
    clock.advance(minutes=10)
    assert _types(engine.evaluate([make_device(toner=15)])) == [AlertType.LOW_SUPPLY]
    clock.advance(minutes=10)
    assert _types(engine.evaluate([make_device(toner=8)])) == [AlertType.CRITICAL_SUPPLY]

    # Nothing further inside the cooldown window
    for _ in range(5):
        clock.advance(minutes=30)
        assert engine.evaluate([make_device(toner=8)]) == []
        assert engine.evaluate([make_device(toner=15)]) == []

    # After four hours the condition fires again
    clock.advance(hours=2)
    assert _types(engine.evaluate([make_device(toner=8)])) == [AlertType.CRITICAL_SUPPLY]


def test_acknowledge_rearms_condition(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    (alert,) = engine.evaluate([make_device(toner=5)])
    assert alert.type is AlertType.CRITICAL_SUPPLY
    assert alert.supply_name == "Black Toner"

    clock.advance(seconds=1)
    assert engine.evaluate([make_device(toner=5)]) == []

    acked = engine.acknowledge(alert.id, by="helpdesk")
    assert acked is not None
    assert acked.acknowledged is True
    assert acked.acknowledged_by == "helpdesk"
    assert acked.acknowledged_at == clock.now

    clock.advance(seconds=1)
    assert _types(engine.evaluate([make_device(toner=5)])) == [AlertType.CRITICAL_SUPPLY]


def test_offline_then_back_online(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    offline = make_device(online=False, toner=None)
    fired = []

    # Polled once a minute for twelve minutes
    fired += engine.evaluate([offline])
    for _ in range(12):
        clock.advance(minutes=1)
        fired += engine.evaluate([offline])
    assert _types(fired) == [AlertType.OFFLINE]
    assert fired[0].created_at == datetime(2024, 3, 4, 10, 5, tzinfo=timezone.utc)

    recovered = engine.evaluate([make_device(online=True, toner=None)])
    assert _types(recovered) == [AlertType.BACK_ONLINE]
    assert recovered[0].details["downtime_minutes"] == 12.0
    assert "12m" in recovered[0].message

    # Recovery is reported once
    clock.advance(minutes=1)
    assert engine.evaluate([make_device(online=True, toner=None)]) == []


def test_short_outage_only_reports_recovery(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    engine.evaluate([make_device(online=False, toner=None)])
    clock.advance(minutes=2)
    assert _types(engine.evaluate([make_device(toner=None)])) == [AlertType.BACK_ONLINE]


def test_offline_device_supplies_not_evaluated(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    assert engine.evaluate([make_device(online=False, toner=3)]) == []


def test_drum_and_fuser_never_alert(settings, clock):
    supplies = [
        Supply(name="Drum Unit", level=1, max_capacity=100, type=SupplyType.DRUM),
        Supply(name="Fuser Unit", level=1, max_capacity=100, type=SupplyType.FUSER),
    ]
    engine = AlertEngine(settings, clock=clock)
    assert engine.evaluate([make_device(supplies=supplies)]) == []


def test_thresholds_are_half_open(clock):
    settings = Settings(alerts=AlertSettings(low_supply_threshold=20, critical_supply_threshold=10))
    engine = AlertEngine(settings, clock=clock)
    assert engine.evaluate([make_device("10.0.0.1", toner=20)]) == []
    assert _types(engine.evaluate([make_device("10.0.0.2", toner=10)])) == [AlertType.LOW_SUPPLY]
    assert _types(engine.evaluate([make_device("10.0.0.3", toner=0)])) == [
        AlertType.CRITICAL_SUPPLY
    ]


def test_disabled_alerts(clock):
    engine = AlertEngine(Settings(alerts=AlertSettings(enabled=False)), clock=clock)
    assert engine.evaluate([make_device(toner=1)]) == []
    assert engine.list_alerts() == []


def test_alerts_published_on_event_bus(settings, clock):
    bus = EventBus()
    engine = AlertEngine(settings, event_bus=bus, clock=clock)
    (alert,) = engine.evaluate([make_device(toner=15)])
    (event,) = bus.recent_events
    assert event.event_type is EventType.ALERT
    assert event.alert == alert


def test_alert_log_operations(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    engine.evaluate([make_device("10.0.0.1", toner=15)])
    clock.advance(minutes=1)
    engine.evaluate([make_device("10.0.0.2", toner=5)])
    clock.advance(minutes=1)
    engine.evaluate([make_device("10.0.0.3", toner=5)])

    alerts = engine.list_alerts()
    assert [a.address for a in alerts] == ["10.0.0.3", "10.0.0.2", "10.0.0.1"]
    assert engine.unacknowledged_count() == 3

    engine.acknowledge(alerts[0].id)
    assert engine.unacknowledged_count() == 2
    assert engine.acknowledge_all() == 2
    assert engine.unacknowledged_count() == 0
    assert engine.acknowledge("missing") is None

    assert engine.delete_alert(alerts[1].id) is True
    assert engine.delete_alert(alerts[1].id) is False
    assert len(engine.list_alerts()) == 2

    assert engine.clear_alerts() == 2
    assert engine.list_alerts() == []


def test_list_alerts_returns_copies(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    engine.evaluate([make_device(toner=15)])
    engine.list_alerts()[0].acknowledged = True
    assert engine.unacknowledged_count() == 1


def test_alert_log_is_bounded(clock):
    engine = AlertEngine(Settings(max_alerts=3), clock=clock)
    for i in range(5):
        engine.evaluate([make_device(f"10.0.0.{i}", toner=15)])
    assert [a.address for a in engine.list_alerts()] == ["10.0.0.4", "10.0.0.3", "10.0.0.2"]


def test_forget_device_drops_offline_timer(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    engine.evaluate([make_device(online=False, toner=None)])
    engine.forget_device("10.0.0.5")
    clock.advance(minutes=10)
    assert engine.evaluate([make_device(online=True, toner=None)]) == []


def test_notifications_dispatched(settings, clock):
    notifier = RecordingNotifier()

    async def scenario() -> None:
        engine = AlertEngine(settings, notifier=notifier, clock=clock)
        engine.evaluate([make_device(toner=15)])
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert len(notifier.sent) == 1
    assert notifier.sent[0][2] == "low-supply"


def test_schedule_gates_dispatch_but_not_events(clock):
    schedule = NotificationSchedule(mode="business-hours", start_time="08:00", end_time="18:00")
    settings = Settings(notifications=NotificationSettings(schedule=schedule))
    notifier = RecordingNotifier()
    clock.now = datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc)  # Saturday

    async def scenario() -> list:
        engine = AlertEngine(settings, notifier=notifier, clock=clock)
        fired = engine.evaluate([make_device(toner=15)])
        await asyncio.sleep(0)
        return fired

    fired = asyncio.run(scenario())
    assert _types(fired) == [AlertType.LOW_SUPPLY]
    assert notifier.sent == []


def test_failing_notifier_does_not_block_alerts(settings, clock):
    class BrokenNotifier:
        async def dispatch(self, subject, message, alert_type):
            raise ConnectionError("smtp down")

    async def scenario() -> list:
        engine = AlertEngine(settings, notifier=BrokenNotifier(), clock=clock)
        engine.evaluate([make_device(toner=15)])
        await asyncio.sleep(0)
        return engine.list_alerts()

    assert len(asyncio.run(scenario())) == 1


def test_settings_update_applies_to_next_evaluation(settings, clock):
    engine = AlertEngine(settings, clock=clock)
    assert engine.evaluate([make_device(toner=25)]) == []
    engine.update_settings(Settings(alerts=AlertSettings(low_supply_threshold=30)))
    assert _types(engine.evaluate([make_device(toner=25)])) == [AlertType.LOW_SUPPLY]
