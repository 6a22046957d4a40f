from datetime import date, datetime


class TimeService:
    """Local wall clock shared by the state, the timers and the action log"""

    def now(self) -> datetime:
        """Current local time, timezone-aware, truncated to the second"""
        return datetime.now().astimezone().replace(microsecond=0)

    def today(self) -> date:
        """Current calendar day in the local timezone"""
        return self.now().date()


# Global time service instance
time_service = TimeService()
