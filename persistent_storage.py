import json
from datetime import date, datetime, timedelta
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, asdict
from pathlib import Path

MAX_LOG_EVENTS = 1000


@dataclass
class EventLogEntry:
    timestamp: str  # ISO format datetime
    event_type: str
    count: int
    data: Dict[str, Any]
    source: str = "app"


class PersistentStorage:
    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.state_file = self.data_dir / "hydration_state.json"
        self.event_log_file = self.data_dir / "event_log.json"

        # Ensure files exist
        self._ensure_files_exist()

    def _ensure_files_exist(self):
        """Create empty files if they don't exist"""
        if not self.state_file.exists():
            self._write_json(self.state_file, {})

        if not self.event_log_file.exists():
            self._write_json(self.event_log_file, {"counts": {}, "events": []})

    def _read_json(self, file_path: Path, default=None):
        """Safely read JSON file"""
        try:
            with open(file_path, 'r') as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            print(f"Error reading {file_path}: {e}")
            return default if default is not None else {}
        if not isinstance(data, dict):
            print(f"Error reading {file_path}: expected an object, got {type(data).__name__}")
            return default if default is not None else {}
        return data

    def _write_json(self, file_path: Path, data):
        """Safely write JSON file"""
        try:
            # Write to temp file first, then rename for atomic operation
            temp_file = file_path.with_suffix('.tmp')
            with open(temp_file, 'w') as f:
                json.dump(data, f, indent=2, default=str)
            temp_file.replace(file_path)
        except Exception as e:
            print(f"Error writing {file_path}: {e}")

    @staticmethod
    def _as_float(value) -> float:
        """Stored numbers may be missing or garbage; both read as 0"""
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    def load_hydration_state(self) -> Dict[str, float]:
        """Load goal, interval and remaining target. Missing keys read as 0.0"""
        data = self._read_json(self.state_file, {})
        return {
            "remaining_target": self._as_float(data.get("remaining_target")),
            "daily_goal": self._as_float(data.get("daily_goal")),
            "reminder_interval": self._as_float(data.get("reminder_interval")),
        }

    def save_hydration_state(self, remaining_target: float, daily_goal: float, reminder_interval: float):
        """Save the counter values, preserving the other keys in the file"""
        existing_data = self._read_json(self.state_file, {})
        existing_data["remaining_target"] = remaining_target
        existing_data["daily_goal"] = daily_goal
        existing_data["reminder_interval"] = reminder_interval
        self._write_json(self.state_file, existing_data)

    def load_last_reset_date(self) -> Optional[date]:
        """Load the last daily reset date, None if never recorded or unreadable"""
        saved = self._read_json(self.state_file, {}).get("last_reset_date")
        if not saved:
            return None
        try:
            return date.fromisoformat(saved)
        except (TypeError, ValueError) as e:
            print(f"⚠️ Ignoring unreadable last_reset_date {saved!r}: {e}")
            return None

    def save_last_reset_date(self, reset_date: date):
        existing_data = self._read_json(self.state_file, {})
        existing_data["last_reset_date"] = reset_date.isoformat()
        self._write_json(self.state_file, existing_data)

    def load_event_counts(self) -> Dict[str, int]:
        return dict(self._read_json(self.event_log_file, {"counts": {}, "events": []}).get("counts", {}))

    def save_event_counts(self, event_counts: Dict[str, int]):
        data = self._read_json(self.event_log_file, {"counts": {}, "events": []})
        data["counts"] = event_counts
        self._write_json(self.event_log_file, data)

    def log_event(self, event: EventLogEntry):
        """Append event to log file"""
        try:
            data = self._read_json(self.event_log_file, {"counts": {}, "events": []})
            events = data.setdefault("events", [])
            events.append(asdict(event))

            # Keep only the most recent events to prevent file from growing too large
            if len(events) > MAX_LOG_EVENTS:
                data["events"] = events[-MAX_LOG_EVENTS:]

            self._write_json(self.event_log_file, data)
        except Exception as e:
            print(f"Error logging event: {e}")

    def get_recent_events(self, now: datetime, hours: int = 24) -> List[EventLogEntry]:
        """Get events from the last N hours"""
        data = self._read_json(self.event_log_file, {"counts": {}, "events": []})
        cutoff_time = now - timedelta(hours=hours)

        recent_events = []
        for event_dict in data.get("events", []):
            try:
                event = EventLogEntry(**event_dict)
                if datetime.fromisoformat(event.timestamp) >= cutoff_time:
                    recent_events.append(event)
            except (TypeError, ValueError):
                continue

        return recent_events

    def cleanup_old_logs(self, now: datetime, days: int = 30):
        """Remove log entries older than specified days"""
        data = self._read_json(self.event_log_file, {"counts": {}, "events": []})
        cutoff_time = now - timedelta(days=days)

        filtered_events = []
        for event_dict in data.get("events", []):
            try:
                if datetime.fromisoformat(event_dict["timestamp"]) >= cutoff_time:
                    filtered_events.append(event_dict)
            except (KeyError, TypeError, ValueError):
                continue

        removed = len(data.get("events", [])) - len(filtered_events)
        data["events"] = filtered_events
        self._write_json(self.event_log_file, data)
        print(f"Cleaned up {removed} log entries older than {days} days")
        return removed
