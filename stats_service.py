from __future__ import annotations
import datetime
from collections import Counter
from typing import Iterable, Optional, Set

from models import WorkoutRecord, WorkoutStats
from tools import DateTools, system_clock


def _workout_days(
    workouts: Iterable[WorkoutRecord], now: datetime.datetime
) -> Set[datetime.date]:
    return {DateTools.local_day(w.date, now) for w in workouts}


def current_streak(days: Set[datetime.date], today: datetime.date) -> int:
    """Consecutive workout days ending today, or yesterday if today is empty."""
    one_day = datetime.timedelta(days=1)
    anchor = today
    if anchor not in days:
        anchor = today - one_day
        if anchor not in days:
            return 0
    streak = 0
    while anchor in days:
        streak += 1
        anchor -= one_day
    return streak


def longest_streak(days: Set[datetime.date]) -> int:
    """Longest run of consecutive calendar days in ``days``."""
    longest = 0
    run = 0
    last: Optional[datetime.date] = None
    for day in sorted(days):
        if last is not None and (day - last).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        last = day
    return longest


def favorite_exercise(workouts: Iterable[WorkoutRecord]) -> Optional[str]:
    """Most logged exercise name; ties go to the alphabetically first name."""
    counts = Counter(e.name for w in workouts for e in w.exercises)
    if not counts:
        return None
    return min(counts, key=lambda name: (-counts[name], name))


def compute_stats(
    workouts: Iterable[WorkoutRecord],
    now: datetime.datetime | None = None,
    week_start: int = 0,
) -> WorkoutStats:
    """Derive :class:`WorkoutStats` from a ledger snapshot.

    Calendar days, weeks and months are taken in the timezone of ``now``.
    """
    workouts = list(workouts)
    if now is None:
        now = system_clock()
    days = _workout_days(workouts, now)
    week_begin = DateTools.start_of_week(now, week_start)
    week_end = week_begin + datetime.timedelta(days=7)
    this_week = 0
    this_month = 0
    for w in workouts:
        local = DateTools.localize(w.date, now)
        if week_begin <= local < week_end:
            this_week += 1
        if local.year == now.year and local.month == now.month:
            this_month += 1
    return WorkoutStats(
        total_workouts=len(workouts),
        current_streak=current_streak(days, now.date()),
        longest_streak=longest_streak(days),
        total_volume=sum(w.total_volume for w in workouts),
        total_sets=sum(w.total_sets for w in workouts),
        total_exercises=sum(len(w.exercises) for w in workouts),
        favorite_exercise=favorite_exercise(workouts),
        workouts_this_week=this_week,
        workouts_this_month=this_month,
    )


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(self, clock=None, week_start: int = 0) -> None:
        self.clock = clock or system_clock
        self.week_start = week_start
        self.latest = WorkoutStats()
        self._unsubscribe = None

    def compute(self, workouts: Iterable[WorkoutRecord]) -> WorkoutStats:
        self.latest = compute_stats(workouts, self.clock(), self.week_start)
        return self.latest

    def observe(self, coordinator) -> None:
        """Recompute :attr:`latest` whenever ``coordinator`` publishes."""
        self.stop()
        self._unsubscribe = coordinator.add_listener(
            lambda workouts, _status: self.compute(workouts)
        )
        self.compute(coordinator.workouts)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def formatted_volume(self) -> str:
        volume = self.latest.total_volume
        if volume >= 1000:
            return f"{volume / 1000:.1f}k"
        return f"{volume:.0f}"

    def formatted_stats(self) -> dict[str, str]:
        return {
            "workouts": str(self.latest.total_workouts),
            "streak": str(self.latest.current_streak),
            "volume": self.formatted_volume(),
        }
