"""Activity session lifecycle.

    active --pause--> paused --resume--> active
    active|paused --complete--> completed
    active|paused --cancel--> cancelled

Completed and cancelled are terminal. Time spent paused is accumulated in
``paused_seconds`` and excluded from ``duration_seconds``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from fitvibe.db.models import ActivitySession
from fitvibe.exceptions import InvalidTransitionError


class SessionStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.PAUSED})
TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})

# action -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[SessionStatus], SessionStatus]] = {
    "pause": (frozenset({SessionStatus.ACTIVE}), SessionStatus.PAUSED),
    "resume": (frozenset({SessionStatus.PAUSED}), SessionStatus.ACTIVE),
    "complete": (OPEN_STATUSES, SessionStatus.COMPLETED),
    "cancel": (OPEN_STATUSES, SessionStatus.CANCELLED),
}


def next_status(current: str, action: str) -> SessionStatus:
    """Target state of ``action`` from ``current``.

    Raises:
        InvalidTransitionError: If the action is not allowed from ``current``.
        ValueError: If ``action`` is not a lifecycle action.
    """
    if action not in TRANSITIONS:
        msg = f"Unknown session action: {action}"
        raise ValueError(msg)
    sources, target = TRANSITIONS[action]
    if current not in sources:
        raise InvalidTransitionError(current, action)
    return target


def can_transition(current: str, action: str) -> bool:
    return action in TRANSITIONS and current in TRANSITIONS[action][0]


def allowed_actions(current: str) -> list[str]:
    return [action for action in TRANSITIONS if can_transition(current, action)]


def _elapsed(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds()))


def apply_transition(session: ActivitySession, action: str, now: datetime | None = None) -> SessionStatus:
    """Move ``session`` through ``action`` and update its time accounting."""
    now = now or datetime.now(timezone.utc)
    target = next_status(session.status, action)

    if action == "pause":
        session.paused_at = now
    elif session.paused_at is not None:
        # Leaving the paused state: resume, or complete/cancel while paused
        session.paused_seconds = (session.paused_seconds or 0) + _elapsed(session.paused_at, now)
        session.paused_at = None

    if target in TERMINAL_STATUSES:
        session.ended_at = now
        session.duration_seconds = max(0, _elapsed(session.started_at, now) - (session.paused_seconds or 0))

    session.status = target.value
    return target


def active_seconds(session: ActivitySession, now: datetime | None = None) -> int:
    """Active time so far, excluding pauses (the final duration once terminal)."""
    if session.status in TERMINAL_STATUSES:
        return session.duration_seconds
    now = now or datetime.now(timezone.utc)
    paused = session.paused_seconds or 0
    if session.paused_at is not None:
        paused += _elapsed(session.paused_at, now)
    return max(0, _elapsed(session.started_at, now) - paused)
