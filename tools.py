import re
import datetime
from typing import Callable, Iterable


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    _NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

    @classmethod
    def parse_number(cls, value, default: float = 0.0) -> float:
        """Parse free-form text as a number, falling back to ``default``.

        Reps and weight are entered as text; anything that is not a plain
        decimal literal (blank, ``"abc"``, ``"10 kg"``, ``"nan"``) yields
        ``default`` so historical volume totals stay stable.
        """
        if isinstance(value, bool) or value is None:
            return default
        if isinstance(value, (int, float)):
            return float(value)
        text = str(value)
        if not cls._NUMBER_RE.fullmatch(text):
            return default
        number = float(text)
        if number != number or number in (float("inf"), float("-inf")):
            return default
        return number

    @classmethod
    def volume(cls, sets: Iterable[tuple]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += cls.parse_number(reps) * cls.parse_number(weight)
        return vol


class WeightConverter:
    """Utility for converting between kg and lb."""

    KG_TO_LB = 2.20462

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)


Clock = Callable[[], datetime.datetime]


class LocalTimezone(datetime.tzinfo):
    """The system timezone, resolving the UTC offset per instant.

    ``datetime.now().astimezone()`` pins the offset in effect right now, so
    dates from the other side of a DST change land an hour off. This zone
    asks the system rules for every conversion instead.
    """

    @staticmethod
    def _local(dt: datetime.datetime | None) -> datetime.datetime:
        if dt is None:
            return datetime.datetime.now().astimezone()
        return dt.replace(tzinfo=None).astimezone()

    def utcoffset(self, dt):
        return self._local(dt).utcoffset()

    def dst(self, dt):
        return self._local(dt).dst()

    def tzname(self, dt):
        return self._local(dt).tzname()

    def fromutc(self, dt: datetime.datetime) -> datetime.datetime:
        local = dt.replace(tzinfo=datetime.timezone.utc).astimezone()
        return local.replace(tzinfo=self)

    def __repr__(self) -> str:
        return "LocalTimezone()"


LOCAL_TZ = LocalTimezone()


def system_clock() -> datetime.datetime:
    """Current local time, aware of the system DST rules."""
    return datetime.datetime.now(LOCAL_TZ)


class FixedClock:
    """Clock returning a settable instant, used by tests and replays."""

    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


class DateTools:
    """Calendar helpers working in the timezone of a reference instant."""

    @staticmethod
    def localize(dt: datetime.datetime, ref: datetime.datetime) -> datetime.datetime:
        """Express ``dt`` in the timezone of ``ref``.

        Naive values are assumed to already be in that timezone.
        """
        if ref.tzinfo is None:
            if dt.tzinfo is None:
                return dt
            return dt.astimezone().replace(tzinfo=None)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=ref.tzinfo)
        return dt.astimezone(ref.tzinfo)

    @classmethod
    def local_day(cls, dt: datetime.datetime, ref: datetime.datetime) -> datetime.date:
        return cls.localize(dt, ref).date()

    @staticmethod
    def start_of_week(ref: datetime.datetime, week_start: int = 0) -> datetime.datetime:
        """Midnight of the first day of the week containing ``ref``.

        ``week_start`` follows ``date.weekday()``: 0 is Monday, 6 is Sunday.
        """
        if not 0 <= week_start <= 6:
            raise ValueError("week_start must be between 0 and 6")
        offset = (ref.weekday() - week_start) % 7
        midnight = ref.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight - datetime.timedelta(days=offset)
