"""
User session tracking from activity heartbeats.

A heartbeat within the continuation threshold of the previous session's end
extends that session. Otherwise a new session starts. The decision itself is
a pure function of two datetimes; reading the previous session and writing
the result go through the repository.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from changetrail.models.enums import EventType, ValueKind
from changetrail.models.event import ActorInfo, Event
from changetrail.models.references import EntityReference

logger = logging.getLogger(__name__)

SESSION_CONTINUATION_SECONDS = 300

SESSION_START = "session_start"
SESSION_END = "session_end"
SESSION_DURATION = "session_duration"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def duration_string(start: datetime, end: datetime) -> str:
    """
    Human-readable duration between two datetimes, to the minute.

    Examples: "0 minutes", "4 minutes", "1 hour, 5 minutes",
    "2 days, 3 hours, 0 minutes".
    """
    seconds = max(0, int((end - start).total_seconds()))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes = seconds // 60

    parts = []
    if days:
        parts.append(_plural(days, "day"))
    if days or hours:
        parts.append(_plural(hours, "hour"))
    parts.append(_plural(minutes, "minute"))
    return ", ".join(parts)


@dataclass(frozen=True)
class SessionDecision:
    """Outcome of one heartbeat: extend the previous session or start a new one."""
    continuing: bool
    start: datetime
    end: datetime

    @property
    def duration(self) -> str:
        return duration_string(self.start, self.end)


def continue_or_start(
    previous_start: Optional[datetime],
    previous_end: Optional[datetime],
    now: datetime,
    threshold_seconds: int = SESSION_CONTINUATION_SECONDS,
) -> SessionDecision:
    """
    Decide whether a heartbeat at `now` continues the previous session.

    The session continues when now is at most threshold_seconds after the
    previous end (inclusive). A new session starts and ends at now.
    """
    if previous_start is not None and previous_end is not None:
        gap = (now - previous_end).total_seconds()
        if gap <= threshold_seconds:
            return SessionDecision(continuing=True, start=previous_start, end=max(now, previous_end))
    return SessionDecision(continuing=False, start=now, end=now)


def _meta_datetime(event: Event, key: str) -> Optional[datetime]:
    value = event.get_meta_value(key)
    if value is None or value.kind != ValueKind.DATETIME:
        return None
    return value.data


class SessionTracker:
    """Extends or starts "User Session" events for heartbeats."""

    def __init__(self, repository, aggregator, threshold_seconds: int = SESSION_CONTINUATION_SECONDS):
        self.repository = repository
        self.aggregator = aggregator
        self.threshold_seconds = threshold_seconds

    @classmethod
    def from_settings(cls, settings, repository, aggregator) -> "SessionTracker":
        return cls(repository, aggregator, threshold_seconds=settings.session_continuation_seconds)

    def heartbeat(
        self,
        actor: ActorInfo,
        now: datetime,
        subject: Optional[EntityReference] = None,
    ) -> Tuple[SessionDecision, Optional[Event]]:
        """
        Record activity for an actor at `now`.

        Returns the decision and the stored session event (None if the actor
        isn't tracked).
        """
        previous = self.repository.latest_for_actor(actor.user_id, EventType.SESSION)
        decision = continue_or_start(
            _meta_datetime(previous, SESSION_START) if previous else None,
            _meta_datetime(previous, SESSION_END) if previous else None,
            now,
            self.threshold_seconds,
        )

        if decision.continuing:
            logger.info("Continuing session for user %s (%s)", actor.user_id, decision.duration)
            return decision, self.repository.extend_session(previous.id, decision.end, decision.duration)

        logger.info("Starting new session for user %s", actor.user_id)
        scope = self.aggregator.open_scope(
            subject=subject,
            actor=actor,
            event_type=EventType.SESSION,
            occurred_at=now,
        )
        self.aggregator.contribute_meta(scope, SESSION_START, decision.start)
        self.aggregator.contribute_meta(scope, SESSION_END, decision.end)
        self.aggregator.contribute_meta(scope, SESSION_DURATION, decision.duration)
        return decision, self.aggregator.commit(scope)
