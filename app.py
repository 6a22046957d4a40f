import os
import sys
import asyncio
from dotenv import load_dotenv
from nicegui import ui, app
from event_manager import EventManager
from hydration_state import HydrationState
from notification_service import create_notifier
from persistent_storage import PersistentStorage
from time_service import time_service

# Load environment variables
load_dotenv()

QUICK_ADD_AMOUNTS_ML = [100, 250, 500]

REMINDER_INTERVAL_OPTIONS = {
    5: '5 minutes',
    15: '15 minutes',
    30: '30 minutes',
    45: '45 minutes',
    60: '1 hour',
    90: '1.5 hours',
    120: '2 hours',
    180: '3 hours',
    240: '4 hours',
}

NOTIFICATION_SETTINGS_URL = 'x-apple.systempreferences:com.apple.preference.notifications'


def _env_flag(name: str, default: str = 'true') -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 'yes', 'on'}


def _interval_minutes(seconds: float):
    """Picker value for an interval; whole minutes as int so they match the options"""
    minutes = seconds / 60
    return int(minutes) if float(minutes).is_integer() else minutes


class HydrateApp:
    def __init__(self):
        # Configuration from .env
        self.data_dir = os.getenv('DATA_DIR', 'data')
        self.daily_goal_ml = float(os.getenv('DAILY_GOAL_IN_ML', 2000))
        self.reminder_interval_minutes = float(os.getenv('REMINDER_INTERVAL_MINUTES', 60))
        self.notifier_kind = os.getenv('NOTIFIER', 'auto')
        self.action_log_enabled = _env_flag('ACTION_LOG_ENABLED')
        self.log_retention_days = int(os.getenv('LOG_RETENTION_DAYS', 30))
        self.port = int(os.getenv('PORT', 8080))
        self.show_browser = _env_flag('SHOW_BROWSER')

        self.storage = PersistentStorage(self.data_dir)
        self.event_manager = EventManager(self.storage, enabled=self.action_log_enabled)

        # The one hydration state shared by every page
        self.hydration = HydrationState(
            storage=self.storage,
            notifier=create_notifier(self.notifier_kind),
            clock=time_service,
            event_manager=self.event_manager,
            default_daily_goal=self.daily_goal_ml,
            default_reminder_interval=self.reminder_interval_minutes * 60,
        )

    def _snapshot(self) -> dict:
        """Display strings for the bound UI elements"""
        state = self.hydration
        return {
            'progress': state.progress_percentage,
            'consumed_display': f'{int(state.consumed)} / {int(state.daily_goal)} ml consumed',
            'remaining_display': f'Remaining target: {int(state.remaining_target)} ml',
            'countdown': state.formatted_time_remaining(),
            'show_celebration': state.show_celebration,
            'celebration_display': f"You've reached your daily goal of {int(state.daily_goal)}ml!",
            'authorized': state.is_notification_authorized,
            'event_log': self._format_event_log(),
        }

    def _format_event_log(self, limit: int = 8) -> str:
        lines = []
        recent = self.event_manager.get_recent_events(minutes=24 * 60)
        for event in recent[-limit:][::-1]:
            details = ', '.join(f'{key}={value}' for key, value in (event.data or {}).items())
            lines.append(f"{event.timestamp.strftime('%H:%M:%S')} {event.event_type} {details}".rstrip())
        return '\n'.join(lines)

    def bind_view(self):
        """Subscribe a page to the shared state; returns its view dict and listener"""
        view = self._snapshot()

        def on_state_change(_state):
            view.update(self._snapshot())

        self.hydration.add_listener(on_state_change)
        return view, on_state_change

    async def initialize_app(self):
        """Prune the action log, then start permissions and timers"""
        print("🚀 Starting Hydrate...")
        try:
            if self.action_log_enabled:
                self.event_manager.cleanup_old_events(days=self.log_retention_days)
            self.event_manager.trigger_event('app_started', {
                'remaining_ml': self.hydration.remaining_target,
                'daily_goal_ml': self.hydration.daily_goal,
            })
            await self.hydration.start()
            print("✅ App initialization complete")
        except Exception as e:
            print(f"❌ Error initializing app: {e}")

    async def shutdown_app(self):
        try:
            self.event_manager.trigger_event('app_shutdown', {
                'shutdown_time': time_service.now().isoformat()
            })
            await self.hydration.stop()
            print("App shutdown complete")
        except Exception as e:
            print(f"Error during shutdown: {e}")

    async def _open_notification_settings(self):
        """Open the system notification preferences (macOS only)"""
        if sys.platform != 'darwin':
            ui.notify('Enable notifications in your system settings', type='info')
            return
        try:
            await asyncio.create_subprocess_exec(
                'open', NOTIFICATION_SETTINGS_URL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL
            )
        except Exception as e:
            print(f"Error opening notification settings: {e}")

    def create_ui(self):
        """Create the popover card, the settings dialog and the celebration overlay"""
        state = self.hydration
        ui.page_title('Hydrate')

        # Reactive UI data for this page, refreshed on every state change and
        # on the state's one-second refresh tick
        view, on_state_change = self.bind_view()
        ui.context.client.on_disconnect(lambda: state.remove_listener(on_state_change))

        drink_buttons = []
        adding = {'busy': False}
        custom = {'amount': 250}

        def add_water(amount: float):
            # Ignore rapid repeated taps
            if adding['busy'] or amount <= 0:
                return
            adding['busy'] = True
            for button in drink_buttons:
                button.disable()
            state.drink_water(amount)

            def release():
                adding['busy'] = False
                for button in drink_buttons:
                    button.enable()

            ui.timer(0.3, release, once=True)

        with ui.card().classes('w-80 mx-auto p-4 gap-3'):
            ui.label('Hydrate').classes('text-lg font-bold text-center w-full')

            ui.linear_progress(show_value=False).props('rounded size=20px').bind_value_from(view, 'progress')
            ui.label().classes('text-sm').bind_text_from(view, 'consumed_display')
            ui.label().classes('text-sm text-gray-500').bind_text_from(view, 'remaining_display')

            ui.separator()

            ui.label('Drink Water').classes('text-sm font-medium')
            with ui.row().classes('w-full justify-between'):
                for amount in QUICK_ADD_AMOUNTS_ML:
                    drink_buttons.append(
                        ui.button(f'{amount}ml', on_click=lambda amount=amount: add_water(amount))
                    )

            with ui.row().classes('w-full items-center no-wrap'):
                ui.slider(min=50, max=1000, step=50).bind_value(custom, 'amount').classes('flex-1')
                custom_button = ui.button(on_click=lambda: add_water(custom['amount']))
                custom_button.bind_text_from(custom, 'amount', backward=lambda value: f'{int(value)} ml')
                drink_buttons.append(custom_button)

            ui.separator()

            with ui.row().classes('items-center text-xs gap-1'):
                ui.icon('timer')
                ui.label('Next reminder in:').classes('text-gray-500')
                ui.label().classes('font-bold').bind_text_from(view, 'countdown')

            with ui.row().classes('w-full justify-between'):
                ui.button('Reset', icon='restart_alt', on_click=state.reset_target).props('outline')
                ui.button('Settings', icon='settings', on_click=lambda: open_settings())

            with ui.expansion('Recent activity', icon='history').classes('w-full'):
                ui.textarea().classes('w-full').props('readonly rows=6').bind_value_from(view, 'event_log')

        # Celebration overlay
        with ui.dialog().props('persistent') as celebration, ui.card().classes('items-center'):
            ui.label('GOAL ACHIEVED! 🎉').classes('text-2xl font-bold')
            ui.label().classes('text-center').bind_text_from(view, 'celebration_display')
            ui.button('Continue', on_click=state.dismiss_celebration)
        celebration.bind_value_from(view, 'show_celebration')

        # Permission alert
        with ui.dialog() as permission_alert, ui.card():
            ui.label('Notification Permission Required').classes('text-lg font-bold')
            ui.label('Please enable notifications for Hydrate in System Settings '
                     'to receive hydration reminders.')
            with ui.row().classes('w-full justify-end'):
                ui.button('Cancel', on_click=permission_alert.close).props('flat')

                async def open_system_settings():
                    permission_alert.close()
                    await self._open_notification_settings()

                ui.button('Settings', on_click=open_system_settings)

        # Settings dialog, edits are only applied on Save
        pending = {'goal': state.daily_goal, 'interval': _interval_minutes(state.reminder_interval)}
        interval_options = dict(REMINDER_INTERVAL_OPTIONS)

        with ui.dialog() as settings, ui.card().classes('w-96 gap-3'):
            ui.label('Settings').classes('text-xl font-bold')

            ui.label('Daily Goal').classes('font-medium')
            with ui.row().classes('w-full items-center no-wrap'):
                ui.slider(min=500, max=5000, step=100).bind_value(pending, 'goal').classes('flex-1')
                ui.label().bind_text_from(pending, 'goal', backward=lambda value: f'{int(value)} ml')
            ui.label('Recommended: 2000-3000 ml per day').classes('text-xs text-gray-500')

            ui.label('Reminder Interval').classes('font-medium')
            interval_select = ui.select(interval_options).bind_value(pending, 'interval').classes('w-full')
            with ui.row().classes('items-center text-xs gap-1'):
                ui.label('Next reminder in:').classes('text-gray-500')
                ui.label().classes('font-bold').bind_text_from(view, 'countdown')
            ui.label('How often you want to be reminded to drink water').classes('text-xs text-gray-500')

            async def test_notification():
                await state.check_authorization()
                if state.is_notification_authorized:
                    await state.trigger_notification()
                    ui.notify('Test notification sent', type='positive')
                else:
                    permission_alert.open()

            with ui.row().classes('items-center'):
                ui.button('Test Notification', on_click=test_notification).props('size=sm')
                ui.icon('warning', color='orange').bind_visibility_from(view, 'authorized', backward=lambda value: not value)

            def save_settings():
                state.update_daily_goal(float(pending['goal']))
                state.update_reminder_interval(float(pending['interval']) * 60)
                settings.close()
                ui.notify('Settings saved', type='positive')

            with ui.row().classes('w-full justify-between'):
                ui.button('Cancel', on_click=settings.close).props('outline')
                ui.button('Quit', on_click=app.shutdown).props('flat color=negative')
                ui.button('Save', on_click=save_settings)

        def open_settings():
            pending['goal'] = state.daily_goal
            minutes = _interval_minutes(state.reminder_interval)
            if minutes not in interval_options:
                interval_options[minutes] = f'{minutes:g} minutes'
                interval_select.set_options(interval_options)
            pending['interval'] = minutes
            self.event_manager.trigger_event('settings_opened', source='ui')
            settings.open()


# Global app instance
hydrate_app = HydrateApp()


@ui.page('/')
async def index():
    hydrate_app.create_ui()


# Startup and shutdown handlers
async def on_startup():
    """App startup handler"""
    await hydrate_app.initialize_app()


async def on_shutdown():
    """App shutdown handler"""
    await hydrate_app.shutdown_app()


app.on_startup(on_startup)
app.on_shutdown(on_shutdown)

if __name__ in {"__main__", "__mp_main__"}:
    ui.run(
        title='Hydrate',
        port=hydrate_app.port,
        show=hydrate_app.show_browser,
        reload=False
    )
