import os
import sys
import datetime
import time
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from models import ExerciseEntry, SetEntry, WorkoutRecord, WorkoutStats
from stats_service import (
    StatisticsService,
    compute_stats,
    current_streak,
    favorite_exercise,
    longest_streak,
)
from tools import LOCAL_TZ, FixedClock

UTC = datetime.timezone.utc
# Wednesday
NOW = datetime.datetime(2024, 5, 15, 12, 0, tzinfo=UTC)


def days_ago(n: int, hour: int = 9, *exercises: str) -> WorkoutRecord:
    when = (NOW - datetime.timedelta(days=n)).replace(hour=hour)
    return WorkoutRecord(
        name=f"Day -{n}",
        date=when,
        exercises=[ExerciseEntry(name, [SetEntry("10", "50")]) for name in exercises],
    )


class StreakScenarioTest(unittest.TestCase):
    def test_today_yesterday_and_day_before(self) -> None:
        stats = compute_stats([days_ago(0), days_ago(1), days_ago(2)], NOW)
        self.assertEqual(stats.current_streak, 3)
        self.assertGreaterEqual(stats.longest_streak, 3)

    def test_gap_before_yesterday(self) -> None:
        stats = compute_stats([days_ago(3), days_ago(4)], NOW)
        self.assertEqual(stats.current_streak, 0)
        self.assertEqual(stats.longest_streak, 2)

    def test_empty_ledger(self) -> None:
        stats = compute_stats([], NOW)
        self.assertEqual(stats, WorkoutStats())
        self.assertIsNone(stats.favorite_exercise)
        self.assertEqual(stats.total_volume, 0.0)

    def test_streak_anchored_at_yesterday(self) -> None:
        stats = compute_stats([days_ago(1), days_ago(2), days_ago(4)], NOW)
        self.assertEqual(stats.current_streak, 2)

    def test_multiple_workouts_same_day_count_once(self) -> None:
        stats = compute_stats(
            [days_ago(0, 7), days_ago(0, 19), days_ago(1, 23)], NOW
        )
        self.assertEqual(stats.current_streak, 2)
        self.assertEqual(stats.longest_streak, 2)
        self.assertEqual(stats.total_workouts, 3)

    def test_longest_streak_picks_max_run(self) -> None:
        ledger = [days_ago(n) for n in (0, 5, 6, 7, 8, 10, 11)]
        stats = compute_stats(ledger, NOW)
        self.assertEqual(stats.current_streak, 1)
        self.assertEqual(stats.longest_streak, 4)

    def test_days_follow_reference_timezone(self) -> None:
        tz = datetime.timezone(datetime.timedelta(hours=-7))
        now = datetime.datetime(2024, 5, 15, 20, tzinfo=tz)
        late = datetime.datetime(2024, 5, 16, 1, tzinfo=UTC)
        stats = compute_stats([WorkoutRecord("Late", late)], now)
        self.assertEqual(stats.current_streak, 1)

    def test_helpers(self) -> None:
        d = datetime.date(2024, 1, 10)
        days = {d, d - datetime.timedelta(days=1)}
        self.assertEqual(current_streak(days, d), 2)
        self.assertEqual(current_streak(days, d + datetime.timedelta(days=2)), 0)
        self.assertEqual(longest_streak(set()), 0)
        self.assertEqual(longest_streak({d}), 1)


class AggregateTest(unittest.TestCase):
    def test_totals(self) -> None:
        workout = WorkoutRecord(
            "Mixed",
            NOW,
            [
                ExerciseEntry("Curl", [SetEntry("10", "abc"), SetEntry("8", "20")]),
                ExerciseEntry("Press", [SetEntry("x", "40")]),
            ],
        )
        stats = compute_stats([workout, days_ago(1, 9, "Row")], NOW)
        self.assertEqual(stats.total_volume, 8 * 20.0 + 10 * 50.0)
        self.assertEqual(stats.total_sets, 4)
        self.assertEqual(stats.total_exercises, 3)

    def test_favorite_tie_breaks_alphabetically(self) -> None:
        ledger = [
            days_ago(0, 9, "Squat", "Bench"),
            days_ago(1, 9, "Bench", "Squat"),
            days_ago(2, 9, "Deadlift"),
        ]
        self.assertEqual(favorite_exercise(ledger), "Bench")
        self.assertEqual(favorite_exercise(list(reversed(ledger))), "Bench")
        ledger.append(days_ago(3, 9, "Squat"))
        self.assertEqual(compute_stats(ledger, NOW).favorite_exercise, "Squat")

    def test_week_and_month_windows(self) -> None:
        ledger = [
            days_ago(0),
            days_ago(2),   # Monday of this week
            days_ago(3),   # Sunday, previous ISO week
            days_ago(14),  # May 1st
            days_ago(15),  # April 30th
        ]
        stats = compute_stats(ledger, NOW)
        self.assertEqual(stats.workouts_this_week, 2)
        self.assertEqual(stats.workouts_this_month, 4)
        sunday_weeks = compute_stats(ledger, NOW, week_start=6)
        self.assertEqual(sunday_weeks.workouts_this_week, 3)

    def test_future_workout_outside_week(self) -> None:
        future = WorkoutRecord("Next week", NOW + datetime.timedelta(days=6))
        self.assertEqual(compute_stats([future], NOW).workouts_this_week, 0)


class StatisticsServiceTest(unittest.TestCase):
    def test_formatted_stats(self) -> None:
        service = StatisticsService(clock=FixedClock(NOW))
        heavy = WorkoutRecord("Heavy", NOW, [ExerciseEntry("Squat", [SetEntry("5", "250")])])
        service.compute([heavy])
        self.assertEqual(service.formatted_volume(), "1.2k")
        self.assertEqual(
            service.formatted_stats(), {"workouts": "1", "streak": "1", "volume": "1.2k"}
        )
        service.compute([days_ago(0, 9, "Row")])
        self.assertEqual(service.formatted_volume(), "500")

    def test_observe_recomputes_on_notification(self) -> None:
        class FakeCoordinator:
            def __init__(self):
                self.workouts = []
                self.listeners = []

            def add_listener(self, listener):
                self.listeners.append(listener)
                return lambda: self.listeners.remove(listener)

        coordinator = FakeCoordinator()
        service = StatisticsService(clock=FixedClock(NOW))
        service.observe(coordinator)
        self.assertEqual(service.latest.total_workouts, 0)
        coordinator.listeners[0]([days_ago(0), days_ago(1)], None)
        self.assertEqual(service.latest.current_streak, 2)
        service.stop()
        self.assertEqual(coordinator.listeners, [])


@unittest.skipUnless(hasattr(time, "tzset"), "needs time.tzset")
class LocalCalendarTest(unittest.TestCase):
    def setUp(self) -> None:
        self._old_tz = os.environ.get("TZ")
        os.environ["TZ"] = "EST5EDT,M3.2.0,M11.1.0"
        time.tzset()

    def tearDown(self) -> None:
        if self._old_tz is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = self._old_tz
        time.tzset()

    def test_streaks_across_spring_forward(self) -> None:
        now = datetime.datetime(2024, 3, 12, 12, tzinfo=LOCAL_TZ)
        ledger = [
            # 23:30 EST on Saturday Mar 9, before the clocks change
            WorkoutRecord("Sat", datetime.datetime(2024, 3, 10, 4, 30, tzinfo=UTC)),
            WorkoutRecord("Mon", datetime.datetime(2024, 3, 11, 16, tzinfo=UTC)),
            WorkoutRecord("Tue", datetime.datetime(2024, 3, 12, 16, tzinfo=UTC)),
        ]
        stats = StatisticsService(clock=FixedClock(now)).compute(ledger)
        self.assertEqual(stats.current_streak, 2)
        self.assertEqual(stats.longest_streak, 2)
        self.assertEqual(stats.workouts_this_week, 2)
        self.assertEqual(stats.workouts_this_month, 3)


if __name__ == "__main__":
    unittest.main()
