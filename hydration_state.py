import random
import uuid
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional
from time_service import time_service
from timer_manager import TimerManager
from persistent_storage import PersistentStorage
from notification_service import NotificationService
from event_manager import EventManager

DEFAULT_DAILY_GOAL_ML = 2000.0
DEFAULT_REMINDER_INTERVAL_SECONDS = 3600.0

REMINDER_TIMER = 'reminder'
UI_REFRESH_TIMER = 'ui_refresh'
UI_REFRESH_SECONDS = 1.0

IMMEDIATE_DELAY_SECONDS = 0.1
SCHEDULED_DELAY_SECONDS = 1.0

REMINDER_TITLE = "Hydration Reminder"
CELEBRATION_TITLE = "Congratulations! 🎉"

REMINDER_MESSAGES = [
    "It's hydration time! Just a friendly reminder that your body needs water. 💧",
    "Water break! Take a moment to hydrate - your future self will thank you. 🌊",
    "Staying hydrated is a form of self-care. Time for some refreshment! 🥤",
    "Your friendly hydration reminder is here! Take a sip and stay energized. ⚡",
    "Hydration checkpoint! Remember to drink water for better focus and energy. 🧠",
]

Listener = Callable[['HydrationState'], None]


class HydrationState:
    """Daily intake counter, reminder schedule and their persistence.

    One instance per process. Every mutation runs on the event loop and is
    saved straight away; listeners are told after each change and on every
    UI refresh tick.
    """

    def __init__(self, storage: PersistentStorage, notifier: NotificationService,
                 clock=time_service, event_manager: Optional[EventManager] = None,
                 timer_manager: Optional[TimerManager] = None,
                 default_daily_goal: float = DEFAULT_DAILY_GOAL_ML,
                 default_reminder_interval: float = DEFAULT_REMINDER_INTERVAL_SECONDS):
        self.storage = storage
        self.notifier = notifier
        self.clock = clock
        self.event_manager = event_manager
        self.timer_manager = timer_manager or TimerManager(clock=clock)
        if default_daily_goal <= 0:
            print(f"⚠️ Configured daily goal {default_daily_goal} is not positive, using {DEFAULT_DAILY_GOAL_ML:g}ml")
            default_daily_goal = DEFAULT_DAILY_GOAL_ML
        if default_reminder_interval <= 0:
            print(f"⚠️ Configured reminder interval {default_reminder_interval} is not positive, "
                  f"using {DEFAULT_REMINDER_INTERVAL_SECONDS:g}s")
            default_reminder_interval = DEFAULT_REMINDER_INTERVAL_SECONDS
        self.default_daily_goal = default_daily_goal
        self.default_reminder_interval = default_reminder_interval

        self.remaining_target = default_daily_goal
        self.daily_goal = default_daily_goal
        self.reminder_interval = default_reminder_interval
        self.next_reminder_time: datetime = clock.now() + timedelta(seconds=default_reminder_interval)
        self.show_celebration = False
        self.is_notification_authorized = False
        self.last_reset_date: Optional[date] = None

        self._listeners: List[Listener] = []

        self.load()
        self.check_for_daily_reset()
        self._setup_timers()
        self._update_next_reminder_time()

    # Persistence

    def load(self):
        """Load saved values, defaulting anything missing or zero"""
        saved = self.storage.load_hydration_state()
        self.daily_goal = saved['daily_goal'] if saved['daily_goal'] > 0 else self.default_daily_goal
        self.reminder_interval = (saved['reminder_interval'] if saved['reminder_interval'] > 0
                                  else self.default_reminder_interval)
        self.remaining_target = saved['remaining_target']

        # Zero or less means the counter was never initialized
        if self.remaining_target <= 0:
            self.remaining_target = self.daily_goal
        self.remaining_target = min(self.remaining_target, self.daily_goal)

        self.last_reset_date = self.storage.load_last_reset_date()
        self._update_next_reminder_time()
        print(f"💧 Loaded state: {self.remaining_target:.0f}/{self.daily_goal:.0f}ml remaining, "
              f"reminder every {self.reminder_interval / 60:g}min")

    def save(self):
        self.storage.save_hydration_state(self.remaining_target, self.daily_goal, self.reminder_interval)

    # Counter operations

    def drink_water(self, amount: float):
        """Log water drunk; celebrate when this drink reaches the goal"""
        if amount < 0:
            raise ValueError(f"Amount must not be negative, got {amount}")

        previous_remaining = self.remaining_target
        self.remaining_target = max(0.0, self.remaining_target - amount)
        self.save()
        self._record('drink', {'amount_ml': amount, 'remaining_ml': self.remaining_target})

        if previous_remaining > 0 and self.remaining_target == 0:
            self.show_celebration = True
            print(f"🎉 Daily goal of {self.daily_goal:.0f}ml reached")
            self._record('goal_reached', {'daily_goal_ml': self.daily_goal})
            self._send_celebration_notification()

        self._notify_listeners()

    def reset_target(self):
        self.remaining_target = self.daily_goal
        self.show_celebration = False
        self.save()
        self.last_reset_date = self.clock.today()
        self.storage.save_last_reset_date(self.last_reset_date)
        self._record('reset', {'daily_goal_ml': self.daily_goal})
        self._notify_listeners()

    def check_for_daily_reset(self):
        """Reset the counter when the last reset was on an earlier day"""
        today = self.clock.today()
        if self.last_reset_date is None:
            self.last_reset_date = today
            self.storage.save_last_reset_date(today)
            return

        if self.last_reset_date != today:
            print(f"🌅 Daily reset triggered: {self.last_reset_date} -> {today}")
            self.reset_target()

    def update_daily_goal(self, new_goal: float):
        """Change the goal while keeping what has already been drunk today"""
        if new_goal <= 0:
            raise ValueError(f"Daily goal must be positive, got {new_goal}")

        consumed = self.daily_goal - self.remaining_target
        self.daily_goal = new_goal

        if consumed < new_goal:
            self.remaining_target = new_goal - consumed
        else:
            # Already drank more than the new goal
            self.remaining_target = 0.0
            self.show_celebration = True

        self.save()
        self._record('goal_updated', {'daily_goal_ml': new_goal, 'consumed_ml': consumed})
        self._notify_listeners()

    def update_reminder_interval(self, new_interval: float):
        if new_interval <= 0:
            raise ValueError(f"Reminder interval must be positive, got {new_interval}")

        self.reminder_interval = new_interval
        self.save()
        self.timer_manager.restart_timer(REMINDER_TIMER, new_interval)
        self._update_next_reminder_time()
        self._record('interval_updated', {'reminder_interval_seconds': new_interval})
        self._notify_listeners()

    def dismiss_celebration(self):
        self.show_celebration = False
        self._notify_listeners()

    # Derived values

    @property
    def consumed(self) -> float:
        return self.daily_goal - self.remaining_target

    @property
    def progress_percentage(self) -> float:
        """Share of the daily goal already drunk, between 0 and 1"""
        return 1.0 - min(self.remaining_target / self.daily_goal, 1.0)

    def formatted_time_remaining(self) -> str:
        time_remaining = max(0.0, (self.next_reminder_time - self.clock.now()).total_seconds())

        if time_remaining <= 0:
            return "now"

        minutes = int(time_remaining) // 60
        seconds = int(time_remaining) % 60

        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    # Notifications

    async def refresh_authorization(self) -> bool:
        """Ask the notifier for permission and remember the answer"""
        try:
            granted = await self.notifier.request_authorization()
        except Exception as e:
            print(f"❌ Error requesting notification permissions: {e}")
            granted = False

        self.is_notification_authorized = bool(granted)
        if granted:
            print("✅ Notification permission granted")
        else:
            print("⚠️ Notification permission not granted")
        self._notify_listeners()
        return self.is_notification_authorized

    async def check_authorization(self) -> bool:
        """Re-read the permission state without prompting"""
        try:
            self.is_notification_authorized = bool(await self.notifier.get_authorization_status())
        except Exception as e:
            print(f"❌ Error reading notification settings: {e}")
            self.is_notification_authorized = False
        return self.is_notification_authorized

    async def trigger_notification(self) -> bool:
        """Send a reminder right now, or re-request permission when not allowed"""
        if not self.is_notification_authorized:
            await self.refresh_authorization()
            return False

        self.notifier.cancel_all_pending()
        sent = self._send_reminder(immediate=True)
        # Restart so the countdown matches the real schedule of the next periodic reminder
        self.timer_manager.restart_timer(REMINDER_TIMER)
        self._update_next_reminder_time()
        self._record('test_notification', {'sent': sent})
        self._notify_listeners()
        return sent

    def reminder_body(self) -> str:
        message = random.choice(REMINDER_MESSAGES)
        return (f"{message} You still need to drink {int(self.remaining_target)}ml "
                f"to reach your {int(self.daily_goal)}ml goal.")

    def _send_reminder(self, immediate: bool = False) -> bool:
        delay = IMMEDIATE_DELAY_SECONDS if immediate else SCHEDULED_DELAY_SECONDS
        identifier = f"test-notification-{uuid.uuid4()}" if immediate else str(uuid.uuid4())
        queued = self.notifier.schedule(REMINDER_TITLE, self.reminder_body(), delay, identifier,
                                        category='hydration_reminder')
        if not queued:
            print("❌ Reminder notification was not scheduled")
        return queued

    def _send_celebration_notification(self) -> bool:
        body = (f"You've reached your daily hydration goal of {int(self.daily_goal)}ml! "
                f"Amazing job taking care of yourself!")
        queued = self.notifier.schedule(CELEBRATION_TITLE, body, IMMEDIATE_DELAY_SECONDS,
                                        f"celebration-{uuid.uuid4()}", category='hydration_celebration')
        if not queued:
            print("❌ Celebration notification was not scheduled")
        return queued

    # Timers

    def _setup_timers(self):
        self.timer_manager.add_timer(REMINDER_TIMER, self.reminder_interval, self._on_reminder_timer)
        self.timer_manager.add_timer(UI_REFRESH_TIMER, UI_REFRESH_SECONDS, self._notify_listeners)

    def _on_reminder_timer(self):
        print(f"⏰ Hydration reminder: {self.remaining_target:.0f}ml to go")
        self._send_reminder()
        self._update_next_reminder_time()
        self._record('reminder_sent', {'remaining_ml': self.remaining_target})
        self._notify_listeners()

    def _update_next_reminder_time(self):
        self.next_reminder_time = self.clock.now() + timedelta(seconds=self.reminder_interval)

    async def start(self):
        """Check permissions, then start the reminder and refresh timers"""
        await self.refresh_authorization()
        await self.timer_manager.start()
        self._update_next_reminder_time()

    async def stop(self):
        await self.timer_manager.stop()
        self.notifier.cancel_all_pending()
        self.save()

    # Observers

    def add_listener(self, callback: Listener) -> Listener:
        self._listeners.append(callback)
        return callback

    def remove_listener(self, callback: Listener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify_listeners(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                print(f"Error in state listener: {e}")

    def _record(self, event_type: str, data: dict):
        if self.event_manager:
            self.event_manager.trigger_event(event_type, data, source='hydration')
