from __future__ import annotations

from datetime import timedelta

from event_manager import EventManager
from persistent_storage import PersistentStorage


def test_trigger_event_counts_and_persists(event_manager: EventManager, storage: PersistentStorage) -> None:
    first = event_manager.trigger_event("drink", {"amount_ml": 250})
    second = event_manager.trigger_event("drink", {"amount_ml": 100})
    event_manager.trigger_event("reset")

    assert first.count == 1
    assert second.count == 2
    assert storage.load_event_counts() == {"drink": 2, "reset": 1}
    assert [event.data for event in event_manager.events] == [{"amount_ml": 250}, {"amount_ml": 100}, {}]


def test_recent_events_reload_on_startup(storage: PersistentStorage, clock) -> None:
    EventManager(storage, clock=clock).trigger_event("reminder_sent", {"remaining_ml": 500})

    clock.advance(60)
    reloaded = EventManager(storage, clock=clock)

    assert [event.event_type for event in reloaded.events] == ["reminder_sent"]
    assert reloaded.event_counts == {"reminder_sent": 1}
    assert reloaded.trigger_event("reminder_sent").count == 2


def test_get_recent_events_window(event_manager: EventManager, clock) -> None:
    event_manager.trigger_event("drink")
    clock.advance(2 * 3600)
    event_manager.trigger_event("reset")

    assert [event.event_type for event in event_manager.get_recent_events(minutes=60)] == ["reset"]


def test_cleanup_old_events(event_manager: EventManager, clock) -> None:
    event_manager.trigger_event("drink")
    clock.current += timedelta(days=31)
    event_manager.trigger_event("reset")

    event_manager.cleanup_old_events(days=30)

    assert [event.event_type for event in event_manager.events] == ["reset"]


def test_disabled_log_records_nothing(storage: PersistentStorage, clock) -> None:
    manager = EventManager(storage, clock=clock, enabled=False)

    assert manager.trigger_event("drink") is None
    assert manager.events == []
    assert storage.load_event_counts() == {}
