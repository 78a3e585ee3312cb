"""Data models for sessions, streaks, achievements, goals and challenges."""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

__all__ = [
    "SessionType",
    "TemperatureUnit",
    "Temperature",
    "Session",
    "InvalidSession",
    "Statistics",
    "StreakState",
    "AchievementCategory",
    "Achievement",
    "GoalTargetType",
    "Goal",
    "ChallengeRequirement",
    "Challenge",
    "local_day",
    "naive_local",
    "week_start_for",
    "month_start_for",
]


class SessionType(Enum):
    """Kind of exposure session."""

    COLD_PLUNGE = "cold"
    SAUNA = "sauna"

    @property
    def display_name(self) -> str:
        return "Cold Plunge" if self is SessionType.COLD_PLUNGE else "Sauna"


class TemperatureUnit(Enum):
    FAHRENHEIT = "F"
    CELSIUS = "C"

    @property
    def symbol(self) -> str:
        return f"°{self.value}"

    def convert(self, value: float, to: "TemperatureUnit") -> float:
        """Convert a reading in this unit to another unit."""
        if self is to:
            return value
        if self is TemperatureUnit.FAHRENHEIT:
            return (value - 32) * 5 / 9
        return value * 9 / 5 + 32


@dataclass(frozen=True)
class Temperature:
    """A temperature reading with its unit."""

    value: float
    unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT

    def to(self, unit: TemperatureUnit) -> float:
        return self.unit.convert(self.value, unit)

    def __str__(self) -> str:
        return f"{self.value:.0f}{self.unit.symbol}"


class InvalidSession(ValueError):
    """Session failed validation and was not committed."""

    pass


@dataclass(frozen=True)
class Session:
    """One logged cold plunge or sauna session.

    Sessions are immutable once created; edits go through
    ``dataclasses.replace`` and ``SessionStore.update``. Timestamps are
    held as naive local time; aware values are converted on creation.
    """

    type: SessionType
    duration: float  # seconds
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    temperature: Optional[Temperature] = None
    heart_rate: Optional[int] = None
    notes: Optional[str] = None
    protocol: Optional[str] = None
    breathing_technique: Optional[str] = None

    def __post_init__(self):
        # One timestamp form across the ledger: naive local time
        if isinstance(self.timestamp, datetime) and self.timestamp.tzinfo is not None:
            object.__setattr__(self, "timestamp", naive_local(self.timestamp))

    @property
    def day(self) -> date:
        return local_day(self.timestamp)

    @property
    def minutes(self) -> int:
        """Whole minutes, as counted by goals and achievements."""
        return int(self.duration // 60)

    @property
    def duration_formatted(self) -> str:
        minutes, seconds = divmod(int(self.duration), 60)
        if minutes > 0:
            return f"{minutes}m {seconds}s" if seconds else f"{minutes}m"
        return f"{seconds}s"

    def validate(self) -> None:
        """Raise InvalidSession if this session may not be committed."""
        if not isinstance(self.timestamp, datetime) or self.timestamp.tzinfo is not None:
            raise InvalidSession(
                f"Timestamp must be a naive local datetime, got {self.timestamp!r}"
            )
        if not isinstance(self.type, SessionType):
            raise InvalidSession(f"Unknown session type: {self.type!r}")
        if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
            raise InvalidSession(f"Duration must be a number, got {self.duration!r}")
        if self.duration <= 0:
            raise InvalidSession(f"Duration must be positive, got {self.duration}")
        if self.heart_rate is not None and (
            isinstance(self.heart_rate, bool)
            or not isinstance(self.heart_rate, int)
            or self.heart_rate <= 0
        ):
            raise InvalidSession(f"Heart rate must be a positive integer, got {self.heart_rate!r}")


@dataclass
class Statistics:
    """Aggregates derived from the full session collection."""

    total_sessions: int = 0
    total_cold_sessions: int = 0
    total_sauna_sessions: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    average_temperature: Optional[float] = None
    temperature_unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT
    sessions_this_week: int = 0
    sessions_this_month: int = 0
    # Counters used by the achievement catalog
    cold_minutes: int = 0
    sauna_minutes: int = 0
    early_sessions: int = 0
    late_sessions: int = 0
    extreme_cold_sessions: int = 0
    consistent_weeks: int = 0


@dataclass
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_active_day: Optional[date] = None


class AchievementCategory(Enum):
    STREAK = "Streak"
    COLD_PLUNGE = "Cold Plunge"
    SAUNA = "Sauna"
    DURATION = "Duration"
    CONSISTENCY = "Consistency"
    TOTAL = "Total"
    SPECIAL = "Special"


@dataclass
class Achievement:
    """A catalog badge. Once unlocked it stays unlocked."""

    key: str
    name: str
    description: str
    category: AchievementCategory
    requirement: int
    progress: int = 0
    is_unlocked: bool = False
    unlocked_date: Optional[datetime] = None

    @property
    def progress_fraction(self) -> float:
        if self.requirement <= 0:
            return 0.0
        return min(self.progress / self.requirement, 1.0)


class GoalTargetType(Enum):
    SESSIONS_PER_WEEK = "sessions_per_week"
    SESSIONS_PER_MONTH = "sessions_per_month"
    TOTAL_SESSIONS = "total_sessions"
    STREAK_DAYS = "streak_days"
    TOTAL_MINUTES = "total_minutes"
    MIN_DURATION = "min_duration"

    @property
    def unit_label(self) -> str:
        if self in (
            GoalTargetType.SESSIONS_PER_WEEK,
            GoalTargetType.SESSIONS_PER_MONTH,
            GoalTargetType.TOTAL_SESSIONS,
        ):
            return "sessions"
        if self is GoalTargetType.STREAK_DAYS:
            return "days"
        return "minutes"


@dataclass
class Goal:
    """A user-defined progress target."""

    title: str
    target_type: GoalTargetType
    target_value: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    description: str = ""
    current_value: int = 0
    session_type: Optional[SessionType] = None
    start_date: datetime = field(default_factory=datetime.now)
    end_date: Optional[datetime] = None
    is_completed: bool = False
    completed_date: Optional[datetime] = None

    @property
    def progress(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return min(self.current_value / self.target_value, 1.0)

    @property
    def remaining(self) -> int:
        return max(0, self.target_value - self.current_value)

    def is_active(self, now: datetime) -> bool:
        return not self.is_completed and (self.end_date is None or self.end_date > now)


@dataclass
class ChallengeRequirement:
    type: GoalTargetType
    target: int
    session_type: Optional[SessionType] = None


@dataclass
class Challenge:
    """A shared challenge; ``participants`` comes from outside and is never computed."""

    name: str
    description: str
    start_date: datetime
    end_date: datetime
    requirement: ChallengeRequirement
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    current_progress: int = 0
    is_joined: bool = False
    is_completed: bool = False
    completed_date: Optional[datetime] = None
    participants: int = 0

    @property
    def progress(self) -> float:
        if self.requirement.target <= 0:
            return 0.0
        return min(self.current_progress / self.requirement.target, 1.0)

    def days_remaining(self, now: datetime) -> int:
        return max(0, (local_day(self.end_date) - local_day(now)).days)


def local_day(ts: datetime) -> date:
    """Calendar day of a timestamp in local time.

    Naive datetimes are taken as local already.
    """
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    return ts.date()


def naive_local(ts: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone().replace(tzinfo=None)


def week_start_for(day: date, first_weekday: int = 0) -> date:
    """First day of the week containing ``day`` (0 = Monday)."""
    offset = (day.weekday() - first_weekday) % 7
    return day - timedelta(days=offset)


def month_start_for(day: date) -> date:
    return day.replace(day=1)
