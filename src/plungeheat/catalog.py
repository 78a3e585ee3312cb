"""Built-in achievement and challenge catalogs."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from .models import (
    Achievement,
    AchievementCategory,
    Challenge,
    ChallengeRequirement,
    GoalTargetType,
    SessionType,
    Statistics,
    StreakState,
)

__all__ = [
    "AchievementRule",
    "ACHIEVEMENT_RULES",
    "SESSIONS_PER_CONSISTENT_WEEK",
    "default_achievements",
    "default_challenges",
]

# A week counts toward "Consistent Champion" once it holds this many sessions
SESSIONS_PER_CONSISTENT_WEEK = 4

Counter = Callable[[Statistics, StreakState], int]


@dataclass(frozen=True)
class AchievementRule:
    key: str
    name: str
    description: str
    category: AchievementCategory
    requirement: int
    counter: Counter

    def new_achievement(self) -> Achievement:
        return Achievement(
            key=self.key,
            name=self.name,
            description=self.description,
            category=self.category,
            requirement=self.requirement,
        )


ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule(
        "first_plunge", "First Plunge", "Complete your first cold plunge session",
        AchievementCategory.COLD_PLUNGE, 1,
        lambda stats, streak: stats.total_cold_sessions,
    ),
    AchievementRule(
        "ice_bear", "Ice Bear", "Complete 50 cold plunge sessions",
        AchievementCategory.COLD_PLUNGE, 50,
        lambda stats, streak: stats.total_cold_sessions,
    ),
    AchievementRule(
        "heat_seeker", "Heat Seeker", "Complete 50 sauna sessions",
        AchievementCategory.SAUNA, 50,
        lambda stats, streak: stats.total_sauna_sessions,
    ),
    AchievementRule(
        "week_warrior", "Week Warrior", "Maintain a 7-day streak",
        AchievementCategory.STREAK, 7,
        lambda stats, streak: streak.current_streak,
    ),
    AchievementRule(
        "monthly_master", "Monthly Master", "Maintain a 30-day streak",
        AchievementCategory.STREAK, 30,
        lambda stats, streak: streak.current_streak,
    ),
    AchievementRule(
        "centurion", "Centurion", "Complete 100 total sessions",
        AchievementCategory.TOTAL, 100,
        lambda stats, streak: stats.total_sessions,
    ),
    AchievementRule(
        "early_bird", "Early Bird", "Complete 10 sessions before 7 AM",
        AchievementCategory.SPECIAL, 10,
        lambda stats, streak: stats.early_sessions,
    ),
    AchievementRule(
        "night_owl", "Night Owl", "Complete 10 sessions after 9 PM",
        AchievementCategory.SPECIAL, 10,
        lambda stats, streak: stats.late_sessions,
    ),
    AchievementRule(
        "cold_warrior", "Cold Warrior", "Log 1 hour total cold exposure",
        AchievementCategory.COLD_PLUNGE, 60,
        lambda stats, streak: stats.cold_minutes,
    ),
    AchievementRule(
        "sauna_master", "Sauna Master", "Log 5 hours total sauna time",
        AchievementCategory.SAUNA, 300,
        lambda stats, streak: stats.sauna_minutes,
    ),
    AchievementRule(
        "consistent_champion", "Consistent Champion",
        "Complete 4 sessions per week for 4 weeks",
        AchievementCategory.CONSISTENCY, 16,
        lambda stats, streak: stats.consistent_weeks * SESSIONS_PER_CONSISTENT_WEEK,
    ),
    AchievementRule(
        "extreme_explorer", "Extreme Explorer", "Complete a session below 40°F / 5°C",
        AchievementCategory.COLD_PLUNGE, 1,
        lambda stats, streak: stats.extreme_cold_sessions,
    ),
)


def default_achievements() -> list[Achievement]:
    """Fresh, locked copies of the whole catalog."""
    return [rule.new_achievement() for rule in ACHIEVEMENT_RULES]


def default_challenges(now: datetime) -> list[Challenge]:
    """Built-in challenges starting at ``now``.

    Ids are fixed so that a joined challenge survives a restart.
    """

    def make(cid, name, description, days, req_type, target, session_type, participants):
        return Challenge(
            id=cid,
            name=name,
            description=description,
            start_date=now,
            end_date=now + timedelta(days=days),
            requirement=ChallengeRequirement(req_type, target, session_type),
            participants=participants,
        )

    return [
        make(
            "thirty_day_cold", "30-Day Cold Plunge Challenge",
            "Complete a cold plunge every day for 30 days", 30,
            GoalTargetType.STREAK_DAYS, 30, SessionType.COLD_PLUNGE, 1247,
        ),
        make(
            "sauna_sprint", "Sauna Sprint", "Complete 10 sauna sessions this week", 7,
            GoalTargetType.SESSIONS_PER_WEEK, 10, SessionType.SAUNA, 892,
        ),
        make(
            "contrast_king", "Contrast King",
            "Complete 5 contrast sessions (cold + sauna same day)", 14,
            GoalTargetType.TOTAL_SESSIONS, 5, None, 643,
        ),
        make(
            "weekend_warrior", "Weekend Warrior",
            "Complete 4 sessions every weekend for a month", 28,
            GoalTargetType.TOTAL_SESSIONS, 16, None, 1089,
        ),
        make(
            "mindful_minutes", "Mindful Minutes", "Accumulate 60 minutes of cold exposure", 21,
            GoalTargetType.TOTAL_MINUTES, 60, SessionType.COLD_PLUNGE, 756,
        ),
    ]
