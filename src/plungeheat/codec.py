"""Dict codecs for ledger records.

Used for SQLite row payloads and for sync wire payloads. Decoders raise
``KeyError``, ``ValueError`` or ``TypeError`` on malformed input; callers
decide whether that is fatal.
"""

from datetime import date, datetime
from typing import Optional

from .models import (
    Achievement,
    AchievementCategory,
    Challenge,
    ChallengeRequirement,
    Goal,
    GoalTargetType,
    Session,
    SessionType,
    StreakState,
    Temperature,
    TemperatureUnit,
    naive_local,
)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def session_to_dict(session: Session) -> dict:
    data = {
        "id": session.id,
        "type": session.type.value,
        "timestamp": session.timestamp.isoformat(),
        "duration": session.duration,
        "heart_rate": session.heart_rate,
        "notes": session.notes,
        "protocol": session.protocol,
        "breathing_technique": session.breathing_technique,
    }
    if session.temperature is not None:
        data["temperature"] = session.temperature.value
        data["temperature_unit"] = session.temperature.unit.value
    return data


def session_from_dict(data: dict) -> Session:
    temperature = None
    if data.get("temperature") is not None:
        temperature = Temperature(
            value=float(data["temperature"]),
            unit=TemperatureUnit(data.get("temperature_unit") or "F"),
        )
    heart_rate = data.get("heart_rate")
    return Session(
        id=str(data["id"]),
        type=SessionType(data["type"]),
        timestamp=naive_local(datetime.fromisoformat(data["timestamp"])),
        duration=float(data["duration"]),
        temperature=temperature,
        heart_rate=int(heart_rate) if heart_rate is not None else None,
        notes=data.get("notes"),
        protocol=data.get("protocol"),
        breathing_technique=data.get("breathing_technique"),
    )


def goal_to_dict(goal: Goal) -> dict:
    return {
        "id": goal.id,
        "title": goal.title,
        "description": goal.description,
        "target_type": goal.target_type.value,
        "target_value": goal.target_value,
        "current_value": goal.current_value,
        "session_type": goal.session_type.value if goal.session_type else None,
        "start_date": _dt(goal.start_date),
        "end_date": _dt(goal.end_date),
        "is_completed": goal.is_completed,
        "completed_date": _dt(goal.completed_date),
    }


def goal_from_dict(data: dict) -> Goal:
    return Goal(
        id=data["id"],
        title=data["title"],
        description=data.get("description", ""),
        target_type=GoalTargetType(data["target_type"]),
        target_value=int(data["target_value"]),
        current_value=int(data.get("current_value", 0)),
        session_type=SessionType(data["session_type"]) if data.get("session_type") else None,
        start_date=_parse_dt(data.get("start_date")) or datetime.now(),
        end_date=_parse_dt(data.get("end_date")),
        is_completed=bool(data.get("is_completed", False)),
        completed_date=_parse_dt(data.get("completed_date")),
    )


def achievement_to_dict(achievement: Achievement) -> dict:
    return {
        "key": achievement.key,
        "name": achievement.name,
        "description": achievement.description,
        "category": achievement.category.value,
        "requirement": achievement.requirement,
        "progress": achievement.progress,
        "is_unlocked": achievement.is_unlocked,
        "unlocked_date": _dt(achievement.unlocked_date),
    }


def achievement_from_dict(data: dict) -> Achievement:
    return Achievement(
        key=data["key"],
        name=data["name"],
        description=data.get("description", ""),
        category=AchievementCategory(data["category"]),
        requirement=int(data["requirement"]),
        progress=int(data.get("progress", 0)),
        is_unlocked=bool(data.get("is_unlocked", False)),
        unlocked_date=_parse_dt(data.get("unlocked_date")),
    )


def challenge_to_dict(challenge: Challenge) -> dict:
    req = challenge.requirement
    return {
        "id": challenge.id,
        "name": challenge.name,
        "description": challenge.description,
        "start_date": _dt(challenge.start_date),
        "end_date": _dt(challenge.end_date),
        "requirement": {
            "type": req.type.value,
            "target": req.target,
            "session_type": req.session_type.value if req.session_type else None,
        },
        "current_progress": challenge.current_progress,
        "is_joined": challenge.is_joined,
        "is_completed": challenge.is_completed,
        "completed_date": _dt(challenge.completed_date),
        "participants": challenge.participants,
    }


def challenge_from_dict(data: dict) -> Challenge:
    req = data["requirement"]
    return Challenge(
        id=data["id"],
        name=data["name"],
        description=data.get("description", ""),
        start_date=datetime.fromisoformat(data["start_date"]),
        end_date=datetime.fromisoformat(data["end_date"]),
        requirement=ChallengeRequirement(
            type=GoalTargetType(req["type"]),
            target=int(req["target"]),
            session_type=SessionType(req["session_type"]) if req.get("session_type") else None,
        ),
        current_progress=int(data.get("current_progress", 0)),
        is_joined=bool(data.get("is_joined", False)),
        is_completed=bool(data.get("is_completed", False)),
        completed_date=_parse_dt(data.get("completed_date")),
        participants=int(data.get("participants", 0)),
    )


def streak_to_dict(state: StreakState) -> dict:
    return {
        "current_streak": state.current_streak,
        "longest_streak": state.longest_streak,
        "last_active_day": state.last_active_day.isoformat() if state.last_active_day else None,
    }


def streak_from_dict(data: dict) -> StreakState:
    last = data.get("last_active_day")
    return StreakState(
        current_streak=int(data.get("current_streak", 0)),
        longest_streak=int(data.get("longest_streak", 0)),
        last_active_day=date.fromisoformat(last) if last else None,
    )
