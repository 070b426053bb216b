"""Clock - tick, game-second and period arithmetic for a fixed-timestep shop."""
from __future__ import annotations


class Clock:
    """Converts between ticks, whole game seconds and accounting periods.

    The clock holds no tick counter of its own; the current tick lives in
    the shop state so that a tick stays a pure state transition.
    """

    def __init__(self, tps: int, period_duration_seconds: int = 60) -> None:
        if tps <= 0:
            raise ValueError("tps must be positive")
        if period_duration_seconds <= 0:
            raise ValueError("period_duration_seconds must be positive")
        self._tps = tps
        self._dt = 1.0 / tps
        self._period_duration = period_duration_seconds

    @property
    def tps(self) -> int:
        return self._tps

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def period_duration_seconds(self) -> int:
        return self._period_duration

    def advance_time(self, time_seconds: int, tick: int) -> int:
        """Game seconds after ``tick`` has run: one more on every tps-th tick."""
        if tick % self._tps == 0:
            return time_seconds + 1
        return time_seconds

    def time_for_tick(self, tick: int) -> int:
        """Whole game seconds elapsed once ``tick`` ticks have run."""
        return tick // self._tps

    def period_for_time(self, time_seconds: int) -> int:
        """1-based period containing ``time_seconds``."""
        return time_seconds // self._period_duration + 1

    def is_period_rollover(self, previous_seconds: int, time_seconds: int) -> bool:
        return (time_seconds // self._period_duration) > (
            previous_seconds // self._period_duration
        )

    @staticmethod
    def spawn_due(tick: int, interval_ticks: int) -> bool:
        return interval_ticks > 0 and tick % interval_ticks == 0
