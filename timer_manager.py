import asyncio
from datetime import datetime, timedelta
from typing import Dict, Callable, Optional
from dataclasses import dataclass, field
from time_service import time_service


@dataclass
class Timer:
    name: str
    interval_seconds: float
    callback: Callable
    next_trigger_time: Optional[datetime] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class TimerManager:
    """Periodic timers, each running as its own task on the event loop.

    Restarting a timer cancels its task and starts a new one, so a new
    interval counts from the moment of the restart.
    """

    def __init__(self, clock=time_service, callback_timeout: float = 30.0):
        self.timers: Dict[str, Timer] = {}
        self.clock = clock
        self.callback_timeout = callback_timeout
        self._running = False

    def add_timer(self, name: str, interval_seconds: float, callback: Callable) -> Timer:
        """Add a new timer. It starts ticking once the manager is running"""
        if interval_seconds <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval_seconds}")
        if name in self.timers:
            self.remove_timer(name)

        timer = Timer(name=name, interval_seconds=interval_seconds, callback=callback)
        timer.next_trigger_time = self._calculate_next_trigger(timer, self.clock.now())
        self.timers[name] = timer

        if self._running:
            self._launch(timer)

        print(f"Timer '{name}' added. Interval: {interval_seconds:g}s")
        return timer

    def remove_timer(self, name: str):
        """Remove a timer"""
        timer = self.timers.pop(name, None)
        if timer:
            self._cancel(timer)

    def restart_timer(self, name: str, interval_seconds: Optional[float] = None) -> Optional[datetime]:
        """Cancel the pending run and schedule a fresh one from now.

        Returns the new next trigger time, or None for an unknown timer.
        """
        timer = self.timers.get(name)
        if not timer:
            return None
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError(f"Timer interval must be positive, got {interval_seconds}")
            timer.interval_seconds = interval_seconds

        self._cancel(timer)
        timer.next_trigger_time = self._calculate_next_trigger(timer, self.clock.now())
        if self._running:
            self._launch(timer)

        print(f"⏰ Timer '{name}' restarted. Next trigger: {timer.next_trigger_time}")
        return timer.next_trigger_time

    def _calculate_next_trigger(self, timer: Timer, current_time: datetime) -> datetime:
        """Calculate when a timer should next trigger"""
        return current_time + timedelta(seconds=timer.interval_seconds)

    def _launch(self, timer: Timer):
        timer.task = asyncio.get_running_loop().create_task(self._timer_loop(timer))

    def _cancel(self, timer: Timer):
        if timer.task and not timer.task.done():
            timer.task.cancel()
        timer.task = None

    async def _fire(self, timer: Timer):
        """Run one callback; coroutines are bounded by the callback timeout"""
        try:
            result = timer.callback()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=self.callback_timeout)
        except asyncio.TimeoutError:
            print(f"Timer '{timer.name}' callback timed out after {self.callback_timeout:g}s")
        except Exception as e:
            print(f"Error in timer {timer.name}: {e}")

    async def _timer_loop(self, timer: Timer):
        """Sleep for one interval, fire, repeat"""
        while self._running:
            await asyncio.sleep(timer.interval_seconds)

            await self._fire(timer)

            timer.next_trigger_time = self._calculate_next_trigger(timer, self.clock.now())

    async def start(self):
        """Start the timer manager"""
        if self._running:
            return
        self._running = True
        for timer in self.timers.values():
            timer.next_trigger_time = self._calculate_next_trigger(timer, self.clock.now())
            self._launch(timer)
        print("⏰ Timer manager started successfully")

    async def stop(self):
        """Stop the timer manager and cancel every timer task"""
        self._running = False

        tasks_to_cleanup = []
        for timer in self.timers.values():
            if timer.task and not timer.task.done():
                tasks_to_cleanup.append(timer.task)
                timer.task.cancel()
            timer.task = None

        # Wait for all tasks to complete cancellation
        if tasks_to_cleanup:
            done, pending = await asyncio.wait(tasks_to_cleanup, timeout=2.0)
            if pending:
                print("Warning: Some timer tasks didn't cancel within timeout")

        print("⏰ Timer manager stopped")
