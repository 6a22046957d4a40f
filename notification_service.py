import asyncio
import shutil
import sys
from dataclasses import dataclass
from typing import Dict, Optional, Set

AUTHORIZATION_TIMEOUT_SECONDS = 10.0


@dataclass
class Notification:
    """A single notification request"""
    identifier: str
    title: str
    body: str
    category: Optional[str] = None  # 'hydration_reminder' or 'hydration_celebration'


class NotificationService:
    """Notification capability used by the hydration state.

    Scheduling is fire-and-forget: failures are logged, never retried.
    """

    async def request_authorization(self) -> bool:
        """Ask for permission to deliver notifications"""
        return await self.get_authorization_status()

    async def get_authorization_status(self) -> bool:
        """Whether notifications can currently be delivered"""
        raise NotImplementedError

    def cancel_all_pending(self):
        raise NotImplementedError

    def schedule(self, title: str, body: str, delay_seconds: float, identifier: str,
                 category: Optional[str] = None) -> bool:
        """Queue a notification; returns whether the request was accepted"""
        raise NotImplementedError


class UserNotificationsNotifier(NotificationService):
    """macOS notification center through pyobjc's UserNotifications bridge.

    Permission is the real OS state, and pending requests live in the
    notification center, so the OS handles the delivery delay.
    """

    def __init__(self):
        import UserNotifications
        self.un = UserNotifications
        # Raises when the process has no app bundle the center can attach to
        self.center = UserNotifications.UNUserNotificationCenter.currentNotificationCenter()

    async def _await_handler(self, start) -> tuple:
        """Run a completion-handler API and wait for its callback.

        Completion handlers arrive on a framework thread, so the result is
        handed back to the event loop thread-safely.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(*args):
            if not future.done():
                future.set_result(args)

        start(lambda *args: loop.call_soon_threadsafe(resolve, *args))
        return await asyncio.wait_for(future, timeout=AUTHORIZATION_TIMEOUT_SECONDS)

    async def request_authorization(self) -> bool:
        options = (self.un.UNAuthorizationOptionAlert | self.un.UNAuthorizationOptionSound
                   | self.un.UNAuthorizationOptionBadge)

        def start(callback):
            def handler(granted, error):
                callback(granted, error)
            self.center.requestAuthorizationWithOptions_completionHandler_(options, handler)

        granted, error = await self._await_handler(start)
        if error is not None:
            print(f"❌ Error requesting notification permissions: {error}")
        return bool(granted)

    async def get_authorization_status(self) -> bool:
        def start(callback):
            def handler(settings):
                callback(settings)
            self.center.getNotificationSettingsWithCompletionHandler_(handler)

        (settings,) = await self._await_handler(start)
        return settings.authorizationStatus() == self.un.UNAuthorizationStatusAuthorized

    def cancel_all_pending(self):
        self.center.removeAllPendingNotificationRequests()
        print("🔕 Cancelled pending notifications")

    def schedule(self, title: str, body: str, delay_seconds: float, identifier: str,
                 category: Optional[str] = None) -> bool:
        try:
            content = self.un.UNMutableNotificationContent.alloc().init()
            content.setTitle_(title)
            content.setBody_(body)
            content.setSound_(self.un.UNNotificationSound.defaultSound())
            if category:
                content.setCategoryIdentifier_(category)

            trigger = None
            if delay_seconds > 0:
                trigger = self.un.UNTimeIntervalNotificationTrigger.triggerWithTimeInterval_repeats_(
                    delay_seconds, False
                )
            request = self.un.UNNotificationRequest.requestWithIdentifier_content_trigger_(
                identifier, content, trigger
            )
        except Exception as e:
            print(f"❌ Error building notification '{identifier}': {e}")
            return False

        def completion(error):
            if error is not None:
                print(f"❌ Error sending notification '{identifier}': {error}")
            else:
                print(f"🔔 Notification '{identifier}' scheduled")

        self.center.addNotificationRequest_withCompletionHandler_(request, completion)
        return True


class LoopNotifier(NotificationService):
    """Queues requests on the event loop and delivers them after a delay.

    Subclasses implement the delivery itself.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.TimerHandle] = {}
        self._deliveries: Set[asyncio.Task] = set()

    async def _deliver(self, notification: Notification):
        raise NotImplementedError

    def schedule(self, title: str, body: str, delay_seconds: float, identifier: str,
                 category: Optional[str] = None) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            print(f"❌ Cannot schedule notification '{identifier}': no running event loop")
            return False

        notification = Notification(identifier=identifier, title=title, body=body, category=category)
        self._pending[identifier] = loop.call_later(max(0.0, delay_seconds), self._dispatch, notification)
        return True

    def cancel_all_pending(self):
        """Drop every notification that has not been delivered yet"""
        for handle in self._pending.values():
            handle.cancel()
        if self._pending:
            print(f"🔕 Cancelled {len(self._pending)} pending notification(s)")
        self._pending.clear()

    def _dispatch(self, notification: Notification):
        self._pending.pop(notification.identifier, None)
        task = asyncio.get_running_loop().create_task(self._deliver(notification))
        self._deliveries.add(task)
        task.add_done_callback(lambda t: self._log_delivery(notification, t))

    def _log_delivery(self, notification: Notification, task: asyncio.Task):
        self._deliveries.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            print(f"❌ Error sending notification '{notification.identifier}': {error}")
        else:
            print(f"🔔 Notification '{notification.identifier}' delivered")


def _applescript_string(value: str) -> str:
    """Quote a Python string as an AppleScript string literal"""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


class MacNotifier(LoopNotifier):
    """Fallback macOS delivery through osascript's 'display notification'.

    osascript exposes no permission API, so availability of the binary on
    macOS is the best available answer.
    """

    def __init__(self, osascript: str = 'osascript', sound_name: Optional[str] = 'default'):
        super().__init__()
        self.osascript = osascript
        self.sound_name = sound_name

    async def get_authorization_status(self) -> bool:
        return sys.platform == 'darwin' and shutil.which(self.osascript) is not None

    def build_script(self, notification: Notification) -> str:
        script = (f'display notification {_applescript_string(notification.body)} '
                  f'with title {_applescript_string(notification.title)}')
        if self.sound_name:
            script += f' sound name {_applescript_string(self.sound_name)}'
        return script

    async def _deliver(self, notification: Notification):
        process = await asyncio.create_subprocess_exec(
            self.osascript, '-e', self.build_script(notification),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE
        )
        _, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors='replace').strip() if stderr else ''
            raise RuntimeError(f"osascript exited with {process.returncode}: {message}")


class ConsoleNotifier(LoopNotifier):
    """Prints notifications to the console; always authorized"""

    async def get_authorization_status(self) -> bool:
        return True

    async def _deliver(self, notification: Notification):
        print(f"🔔 {notification.title}: {notification.body}")


def create_notifier(kind: str = 'auto') -> NotificationService:
    """Build a notifier: 'macos', 'osascript', 'console' or 'auto'.

    'auto' uses the macOS notification center, then osascript when the
    center is unavailable (for example outside an app bundle), then the
    console off macOS.
    """
    kind = (kind or 'auto').lower()
    if kind == 'osascript':
        return MacNotifier()
    if kind == 'console':
        return ConsoleNotifier()
    if kind not in ('auto', 'macos'):
        print(f"⚠️ Unknown notifier '{kind}', falling back to auto")
        kind = 'auto'
    if kind == 'macos' or sys.platform == 'darwin':
        try:
            return UserNotificationsNotifier()
        except Exception as e:
            print(f"⚠️ Notification center unavailable ({e}), using osascript")
            return MacNotifier()
    return ConsoleNotifier()
