"""Host-session accounting on the user record."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.contrib.auth import get_user_model
from django.db.models import F

User = get_user_model()


def session_minutes(started_at: Optional[datetime], ended_at: datetime) -> int:
    """Whole minutes between two instants, floored at zero. No start means zero."""
    if started_at is None:
        return 0
    elapsed = (ended_at - started_at).total_seconds()
    return max(0, int(elapsed // 60))


@dataclass(frozen=True)
class HostSessionOutcome:
    applied: bool
    user_id: Optional[int] = None
    minutes_added: int = 0
    detail: str = ""


class HostSessionService:
    """Applies HOST_ASSIGNED / HOST_LEFT transitions to a user.

    The clearing update in :meth:`release` is conditional on the start time that
    was read, so a duplicated HOST_LEFT adds its minutes at most once.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def _find_user(self, email: str):
        return User.objects.filter(email__iexact=email).first()

    def assign(self, *, email: str, room: str, now: datetime) -> HostSessionOutcome:
        user = self._find_user(email)
        if user is None:
            self.logger.warning("User not found for host event HOST_ASSIGNED: %s (room %s)", email, room)
            return HostSessionOutcome(applied=False, detail="user_not_found")

        # Last assignment wins; an unresolved earlier session is discarded.
        User.objects.filter(pk=user.pk).update(
            is_active_host=True,
            host_session_start_time=now,
            updated_at=now,
        )
        self.logger.info("Processed HOST_ASSIGNED for user %s in room %s", email, room)
        return HostSessionOutcome(applied=True, user_id=user.pk)

    def release(self, *, email: str, room: str, now: datetime) -> HostSessionOutcome:
        user = self._find_user(email)
        if user is None:
            self.logger.warning("User not found for host event HOST_LEFT: %s (room %s)", email, room)
            return HostSessionOutcome(applied=False, detail="user_not_found")

        started_at = user.host_session_start_time
        minutes = session_minutes(started_at, now)

        if started_at is None:
            matched = User.objects.filter(pk=user.pk, host_session_start_time__isnull=True)
        else:
            matched = User.objects.filter(pk=user.pk, host_session_start_time=started_at)

        updated = matched.update(
            is_active_host=False,
            host_session_start_time=None,
            total_host_minutes=F("total_host_minutes") + minutes,
            updated_at=now,
        )
        if not updated:
            self.logger.info(
                "Host session for %s changed concurrently; HOST_LEFT in room %s not applied.",
                email,
                room,
            )
            return HostSessionOutcome(applied=False, user_id=user.pk, detail="session_changed")

        self.logger.info(
            "Processed HOST_LEFT for user %s in room %s, session duration: %s minutes",
            email,
            room,
            minutes,
        )
        return HostSessionOutcome(applied=True, user_id=user.pk, minutes_added=minutes)
