from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from event_manager import EventManager
from hydration_state import HydrationState
from notification_service import NotificationService
from persistent_storage import PersistentStorage


class FakeClock:
    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class RecordingNotifier(NotificationService):
    """Notifier that records requests instead of delivering them"""

    def __init__(self, authorized: bool = True) -> None:
        super().__init__()
        self.authorized = authorized
        self.scheduled: list[dict] = []
        self.cancel_calls = 0
        self.authorization_requests = 0

    async def request_authorization(self) -> bool:
        self.authorization_requests += 1
        return self.authorized

    async def get_authorization_status(self) -> bool:
        return self.authorized

    def schedule(self, title, body, delay_seconds, identifier, category=None) -> bool:
        self.scheduled.append(
            {
                "title": title,
                "body": body,
                "delay": delay_seconds,
                "identifier": identifier,
                "category": category,
            }
        )
        return True

    def cancel_all_pending(self) -> None:
        self.cancel_calls += 1

    def titles(self) -> list[str]:
        return [item["title"] for item in self.scheduled]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(tmp_path: Path) -> PersistentStorage:
    return PersistentStorage(str(tmp_path / "data"))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_state(storage: PersistentStorage, notifier: RecordingNotifier, clock: FakeClock):
    def _make(**kwargs) -> HydrationState:
        kwargs.setdefault("storage", storage)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("clock", clock)
        return HydrationState(**kwargs)

    return _make


@pytest.fixture
def event_manager(storage: PersistentStorage, clock: FakeClock) -> EventManager:
    return EventManager(storage, clock=clock)
