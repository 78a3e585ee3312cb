"""Progress engine - achievements, goals and challenges.

Everything here moves forward only. Achievements are re-evaluated from
fresh statistics on every commit but never lose progress; goals and
challenges advance by requirement type as each session lands.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Union

from .catalog import ACHIEVEMENT_RULES, default_achievements, default_challenges
from .events import AchievementUnlocked, ChallengeCompleted, EventBus, GoalCompleted
from .models import (
    Achievement,
    Challenge,
    Goal,
    GoalTargetType,
    Session,
    SessionType,
    Statistics,
    StreakState,
)
from .persistence import PersistenceError, PersistencePort

__all__ = ["ProgressEngine", "advance_progress"]

logger = logging.getLogger(__name__)

_COUNTING_TYPES = (
    GoalTargetType.SESSIONS_PER_WEEK,
    GoalTargetType.SESSIONS_PER_MONTH,
    GoalTargetType.TOTAL_SESSIONS,
)


def advance_progress(
    current: int,
    target: int,
    target_type: GoalTargetType,
    session_filter: Optional[SessionType],
    session: Session,
    streak: StreakState,
) -> Optional[int]:
    """New progress value after ``session``, or None if the session does not count."""
    if session_filter is not None and session.type is not session_filter:
        return None

    if target_type in _COUNTING_TYPES:
        return current + 1
    if target_type is GoalTargetType.STREAK_DAYS:
        return streak.current_streak
    if target_type is GoalTargetType.TOTAL_MINUTES:
        return current + session.minutes
    if target_type is GoalTargetType.MIN_DURATION:
        return target if session.minutes >= target else None
    return None


class ProgressEngine:
    """Owns the achievement catalog, user goals and joined challenges."""

    def __init__(
        self,
        persistence: PersistencePort,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._persistence = persistence
        self._bus = bus
        self._clock = clock
        self._achievements: dict[str, Achievement] = {a.key: a for a in default_achievements()}
        self._goals: list[Goal] = []
        self._catalog_challenges: dict[str, Challenge] = {
            c.id: c for c in default_challenges(clock())
        }
        self._joined: dict[str, Challenge] = {}

    def load(self) -> None:
        """Merge stored progress over the built-in catalog."""
        for stored in self._persistence.fetch_achievements():
            if stored.key in self._achievements:
                self._achievements[stored.key] = stored
        self._goals = self._persistence.fetch_goals()
        self._joined = {c.id: c for c in self._persistence.fetch_challenges() if c.is_joined}
        logger.info(
            f"Loaded {len(self._goals)} goals, {len(self._joined)} joined challenges, "
            f"{sum(a.is_unlocked for a in self._achievements.values())} unlocked achievements"
        )

    # -- read side ----------------------------------------------------------

    def achievements(self) -> list[Achievement]:
        return [replace(self._achievements[rule.key]) for rule in ACHIEVEMENT_RULES]

    def achievement(self, key: str) -> Achievement:
        return replace(self._achievements[key])

    def unlocked_achievements(self) -> list[Achievement]:
        return [a for a in self.achievements() if a.is_unlocked]

    def goals(self) -> list[Goal]:
        return [replace(g) for g in self._goals]

    def joined_challenges(self) -> list[Challenge]:
        return [replace(c) for c in self._joined.values()]

    def available_challenges(self) -> list[Challenge]:
        """Catalog challenges, showing joined state where the user has joined."""
        return [
            replace(self._joined.get(cid, challenge))
            for cid, challenge in self._catalog_challenges.items()
        ]

    # -- commit path --------------------------------------------------------

    def on_session_committed(
        self, session: Session, stats: Statistics, streak: StreakState
    ) -> None:
        """Advance everything a newly committed session can affect."""
        self.evaluate_achievements(stats, streak)
        now = self._clock()

        for goal in self._goals:
            if not goal.is_active(now):
                continue
            value = advance_progress(
                goal.current_value, goal.target_value, goal.target_type,
                goal.session_type, session, streak,
            )
            if value is None:
                continue
            goal.current_value = value
            if goal.current_value >= goal.target_value:
                goal.is_completed = True
                goal.completed_date = now
                logger.info(f"Goal completed: {goal.title}")
            self._save(self._persistence.save_goal, goal)
            if goal.is_completed:
                self._publish(GoalCompleted(replace(goal)))

        for challenge in self._joined.values():
            if challenge.is_completed:
                continue
            req = challenge.requirement
            value = advance_progress(
                challenge.current_progress, req.target, req.type,
                req.session_type, session, streak,
            )
            if value is None:
                continue
            challenge.current_progress = value
            if challenge.current_progress >= req.target:
                challenge.is_completed = True
                challenge.completed_date = now
                logger.info(f"Challenge completed: {challenge.name}")
            self._save(self._persistence.save_challenge, challenge)
            if challenge.is_completed:
                self._publish(ChallengeCompleted(replace(challenge)))

    def evaluate_achievements(self, stats: Statistics, streak: StreakState) -> list[Achievement]:
        """Re-run every rule. Returns achievements unlocked by this call."""
        unlocked = []
        now = self._clock()
        for rule in ACHIEVEMENT_RULES:
            achievement = self._achievements[rule.key]
            if achievement.is_unlocked:
                continue

            progress = max(achievement.progress, min(rule.counter(stats, streak), rule.requirement))
            if progress == achievement.progress and progress < rule.requirement:
                continue

            achievement.progress = progress
            if progress >= rule.requirement:
                achievement.is_unlocked = True
                achievement.unlocked_date = now
                unlocked.append(replace(achievement))
                logger.info(f"Achievement unlocked: {achievement.name}")
            self._save(self._persistence.save_achievement, achievement)

        for achievement in unlocked:
            self._publish(AchievementUnlocked(achievement))
        return unlocked

    # -- goals --------------------------------------------------------------

    def add_goal(self, goal: Goal) -> Goal:
        if goal.target_value <= 0:
            raise ValueError(f"Goal target must be positive, got {goal.target_value}")
        self._goals.append(goal)
        self._save(self._persistence.save_goal, goal)
        return replace(goal)

    def update_goal(self, goal: Goal) -> bool:
        for i, existing in enumerate(self._goals):
            if existing.id == goal.id:
                self._goals[i] = goal
                self._save(self._persistence.save_goal, goal)
                return True
        logger.warning(f"Cannot update unknown goal {goal.id}")
        return False

    def delete_goal(self, goal_id: str) -> bool:
        before = len(self._goals)
        self._goals = [g for g in self._goals if g.id != goal_id]
        if len(self._goals) == before:
            logger.info(f"Goal {goal_id} not found, nothing to delete")
            return False
        self._save(self._persistence.delete_goal, goal_id)
        return True

    # -- challenges ---------------------------------------------------------

    def join_challenge(self, challenge: Union[str, Challenge]) -> Challenge:
        """Join a catalog challenge by id, or an externally supplied one."""
        if isinstance(challenge, str):
            if challenge in self._joined:
                return replace(self._joined[challenge])
            if challenge not in self._catalog_challenges:
                raise KeyError(f"Unknown challenge: {challenge}")
            joined = replace(self._catalog_challenges[challenge])
        else:
            joined = replace(challenge)

        joined.is_joined = True
        self._joined[joined.id] = joined
        self._save(self._persistence.save_challenge, joined)
        logger.info(f"Joined challenge: {joined.name}")
        return replace(joined)

    def leave_challenge(self, challenge_id: str) -> bool:
        if self._joined.pop(challenge_id, None) is None:
            return False
        self._save(self._persistence.delete_challenge, challenge_id)
        logger.info(f"Left challenge {challenge_id}")
        return True

    def set_participants(self, challenge_id: str, count: int) -> None:
        """Record the participant count reported by the challenge service."""
        count = max(0, int(count))
        if challenge_id in self._catalog_challenges:
            self._catalog_challenges[challenge_id].participants = count
        if challenge_id in self._joined:
            self._joined[challenge_id].participants = count
            self._save(self._persistence.save_challenge, self._joined[challenge_id])

    # -- maintenance --------------------------------------------------------

    def reset(self) -> None:
        """Restore a locked catalog and forget goals and joined challenges."""
        for goal in self._goals:
            self._save(self._persistence.delete_goal, goal.id)
        for challenge_id in list(self._joined):
            self._save(self._persistence.delete_challenge, challenge_id)
        self._goals = []
        self._joined = {}
        self._achievements = {a.key: a for a in default_achievements()}
        for achievement in self._achievements.values():
            self._save(self._persistence.save_achievement, achievement)

    def _save(self, op: Callable, record) -> None:
        try:
            op(record)
        except PersistenceError as e:
            logger.error(f"Failed to persist progress ({op.__name__}): {e}")

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)
