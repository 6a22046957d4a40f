from datetime import datetime, timedelta
from typing import Dict, List, Optional
from dataclasses import dataclass
from time_service import time_service
from persistent_storage import PersistentStorage, EventLogEntry


@dataclass
class Event:
    event_type: str
    timestamp: datetime
    count: int  # How many times this event type has occurred
    data: dict = None
    source: str = "app"


class EventManager:
    """Action log: user actions, reminders and lifecycle events"""

    def __init__(self, storage: PersistentStorage, clock=time_service, enabled: bool = True):
        self.storage = storage
        self.clock = clock
        self.enabled = enabled
        self.events: List[Event] = []

        # Load existing event counts from storage
        self.event_counts: Dict[str, int] = storage.load_event_counts() if enabled else {}

        # Load recent events from storage
        if enabled:
            self._load_recent_events()

    def trigger_event(self, event_type: str, data: dict = None, source: str = "app") -> Optional[Event]:
        """Record an event and persist it to the action log"""
        if not self.enabled:
            return None

        current_time = self.clock.now()

        self.event_counts[event_type] = self.event_counts.get(event_type, 0) + 1

        event = Event(
            event_type=event_type,
            timestamp=current_time,
            count=self.event_counts[event_type],
            data=data or {},
            source=source
        )
        self.events.append(event)

        log_entry = EventLogEntry(
            timestamp=current_time.isoformat(),
            event_type=event_type,
            count=event.count,
            data=data or {},
            source=source
        )
        self.storage.log_event(log_entry)
        self._save_event_counts()

        return event

    def get_recent_events(self, minutes: int = 60) -> List[Event]:
        """Get events from the last N minutes"""
        cutoff = self.clock.now() - timedelta(minutes=minutes)
        return [event for event in self.events if event.timestamp >= cutoff]

    def cleanup_old_events(self, days: int = 30):
        """Drop events older than N days from memory and from the log file"""
        cutoff_time = self.clock.now() - timedelta(days=days)
        self.events = [event for event in self.events if event.timestamp >= cutoff_time]
        if self.enabled:
            self.storage.cleanup_old_logs(self.clock.now(), days=days)

    def _load_recent_events(self):
        """Load the last day of events from storage"""
        for log_entry in self.storage.get_recent_events(self.clock.now(), hours=24):
            try:
                self.events.append(Event(
                    event_type=log_entry.event_type,
                    timestamp=datetime.fromisoformat(log_entry.timestamp),
                    count=log_entry.count,
                    data=log_entry.data,
                    source=log_entry.source
                ))
            except (TypeError, ValueError) as e:
                print(f"Error loading event from log: {e}")

    def _save_event_counts(self):
        try:
            self.storage.save_event_counts(self.event_counts)
        except Exception as e:
            print(f"Error saving event counts: {e}")
