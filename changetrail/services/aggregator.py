"""
Event aggregation: many observation points, one event.

A single logical change (say, saving a post) fires several independent hook
callbacks: a pre-update snapshot, a post-update diff, meta updates, term
relationship changes. Each one contributes what it saw into an
AggregationScope, and at the end of the operation the scope is finalized into
exactly one Event.

Scope lifecycle: Open -> (any number of contributions) -> Finalized.
There is no way out of Finalized. If the owning operation fails halfway, the
scope is dropped without finalizing, so a partial event is never logged.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from changetrail.errors import ConfigurationError, ScopeFinalizedError
from changetrail.models.enums import ALWAYS_LOG_EVENT_TYPES, Lifecycle, ScopeState
from changetrail.models.event import ActorInfo, Event
from changetrail.models.properties import EventmetaSet, Property, PropertyChangeSet
from changetrail.models.references import EntityReference
from changetrail.models.values import Value, equals
from changetrail.services.event_types import EventTypeResolver
from changetrail.services.normalizer import PropertyKeyPolicy, ValueNormalizer

logger = logging.getLogger(__name__)


@dataclass
class MembershipChange:
    """Entities added to / removed from one set-valued relationship, in observation order."""
    added: List[EntityReference] = field(default_factory=list)
    removed: List[EntityReference] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


class AggregationScope:
    """
    Everything contributed to one not-yet-finalized event.

    A scope belongs to exactly one logical operation (one request, one job)
    and is never shared between operations.
    """

    def __init__(
        self,
        subject: Optional[EntityReference] = None,
        subject_subtype: Optional[str] = None,
        actor: Optional[ActorInfo] = None,
        event_type: Optional[str] = None,
        lifecycle: Lifecycle = Lifecycle.UPDATED,
        occurred_at: Optional[datetime] = None,
    ):
        self.subject = subject
        self.subject_subtype = subject_subtype
        self.actor = actor
        self.event_type = event_type
        self.lifecycle = lifecycle
        self.occurred_at = occurred_at
        self.properties = PropertyChangeSet()
        self.metas = EventmetaSet()
        self.memberships: Dict[str, MembershipChange] = {}
        self.state = ScopeState.OPEN
        self._result: Optional[Event] = None

    @property
    def is_finalized(self) -> bool:
        return self.state == ScopeState.FINALIZED

    @property
    def has_changes(self) -> bool:
        """True when any property or membership change was contributed."""
        return bool(self.properties) or any(self.memberships.values())

    @property
    def has_scalar_diff(self) -> bool:
        return any(not prop.is_snapshot for prop in self.properties)

    @property
    def result(self) -> Optional[Event]:
        return self._result


class EventAggregator:
    """
    Collects contributions into scopes and finalizes them into events.

    Invariants:
    - A contribution whose old and new values are equal is dropped
    - For a key contributed more than once, the earliest old value and the
      latest new value win
    - finalize runs once per scope; later calls return the first result
    - Contributing to a finalized scope is an error
    """

    def __init__(
        self,
        normalizer: ValueNormalizer,
        tracked_roles: Iterable[str] = (),
        key_policy: Optional[PropertyKeyPolicy] = None,
        event_type_resolver: Optional[EventTypeResolver] = None,
        repository=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.normalizer = normalizer
        self.tracked_roles = list(tracked_roles)
        self.key_policy = key_policy or PropertyKeyPolicy()
        self.event_type_resolver = event_type_resolver or EventTypeResolver()
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings, registry=None, repository=None) -> "EventAggregator":
        return cls(
            normalizer=ValueNormalizer.from_settings(settings, registry=registry),
            tracked_roles=settings.roles_to_track,
            key_policy=PropertyKeyPolicy(denylist=settings.suppressed_keys),
            repository=repository,
        )

    # Scope management

    def open_scope(
        self,
        subject: Optional[EntityReference] = None,
        subject_subtype: Optional[str] = None,
        actor: Optional[ActorInfo] = None,
        event_type: Optional[str] = None,
        lifecycle: Lifecycle = Lifecycle.UPDATED,
        occurred_at: Optional[datetime] = None,
    ) -> AggregationScope:
        """Start collecting for one logical operation."""
        return AggregationScope(
            subject=subject,
            subject_subtype=subject_subtype,
            actor=actor,
            event_type=event_type,
            lifecycle=lifecycle,
            occurred_at=occurred_at,
        )

    def describe(
        self,
        scope: AggregationScope,
        event_type: Optional[str] = None,
        lifecycle: Optional[Lifecycle] = None,
        subject: Optional[EntityReference] = None,
        subject_subtype: Optional[str] = None,
    ) -> None:
        """
        Fill in what the operation turned out to be.

        Observation points often learn late whether a save was a create or an
        update, or which status transition happened.
        """
        self._ensure_open(scope)
        if event_type is not None:
            scope.event_type = event_type
        if lifecycle is not None:
            scope.lifecycle = lifecycle
        if subject is not None:
            scope.subject = subject
        if subject_subtype is not None:
            scope.subject_subtype = subject_subtype

    # Contributions

    def contribute_property(
        self,
        scope: AggregationScope,
        key: str,
        source: Optional[str],
        old: Any,
        new: Any = None,
    ) -> Optional[Property]:
        """
        Record a field-level observation.

        With no new value the observation is a snapshot. Pass Value.null() to
        record a field that was cleared. Returns the recorded property, or None
        if nothing was recorded.
        """
        self._ensure_open(scope)

        if not self.key_policy.allows(key):
            logger.debug("Ignoring suppressed property %r", key)
            return None

        old_value = self.normalizer.normalize(old, key, source)
        new_value = None if new is None else self.normalizer.normalize(new, key, source)

        # Formatting differences are not changes
        if new_value is not None and equals(old_value, new_value):
            logger.debug("Dropping no-op change to %r", key)
            return scope.properties.get(key)

        if not scope.properties.has(key):
            return scope.properties.upsert(key, source, old_value, new_value)

        # Earliest old, latest new
        scope.properties.merge(PropertyChangeSet([Property(key, source, old_value, new_value)]))
        return scope.properties.get(key)

    def contribute_meta(self, scope: AggregationScope, key: str, value: Any) -> None:
        """Record free-form metadata. A repeated key replaces the earlier value."""
        self._ensure_open(scope)
        scope.metas.upsert(key, self.normalizer.normalize(value, key))

    def contribute_membership_change(
        self,
        scope: AggregationScope,
        dimension: str,
        added: Iterable[EntityReference] = (),
        removed: Iterable[EntityReference] = (),
    ) -> None:
        """
        Record entities attached to or detached from a set-valued relationship.

        Order is kept and duplicates are allowed; de-duplication is up to
        whoever stores the event.
        """
        self._ensure_open(scope)
        change = scope.memberships.setdefault(dimension, MembershipChange())
        change.added.extend(added)
        change.removed.extend(removed)

    # Finalization

    def finalize(self, scope: AggregationScope, event_type_resolver: Optional[EventTypeResolver] = None) -> Optional[Event]:
        """
        Turn the scope into an Event, or None if there is nothing to report.

        A scope with no property and no membership changes only produces an
        event for the always-log types (login, logout, session). The actor
        filter in Event.create may also yield None. Either way the scope is
        consumed: calling finalize again returns the same result.
        """
        if scope.is_finalized:
            logger.debug("Scope already finalized; returning the first result")
            return scope.result

        event_type = scope.event_type or self._resolve_event_type(scope, event_type_resolver or self.event_type_resolver)

        if not scope.has_changes and event_type not in ALWAYS_LOG_EVENT_TYPES:
            logger.debug("Nothing to report for %r", event_type)
            event = None
        else:
            event = Event.create(
                event_type,
                scope.subject,
                metas=self._collect_metas(scope),
                properties=scope.properties,
                actor=scope.actor,
                tracked_roles=self.tracked_roles,
                subject_subtype=scope.subject_subtype,
                occurred_at=scope.occurred_at or self.clock(),
            )

        scope._result = event
        scope.state = ScopeState.FINALIZED

        if event is not None:
            logger.info("Finalized event: %s", event.event_type)
        return event

    def commit(self, scope: AggregationScope, event_type_resolver: Optional[EventTypeResolver] = None) -> Optional[Event]:
        """Finalize the scope and hand the event to the repository, once."""
        event = self.finalize(scope, event_type_resolver)
        if event is None or event.id is not None:
            return event
        if self.repository is None:
            raise ConfigurationError("EventAggregator has no repository to commit to.")
        return self.repository.save(event)

    def _ensure_open(self, scope: AggregationScope) -> None:
        if scope.is_finalized:
            raise ScopeFinalizedError("Cannot contribute to an aggregation scope that has been finalized.")

    def _resolve_event_type(self, scope: AggregationScope, resolver: EventTypeResolver) -> str:
        changed = {dimension: change for dimension, change in scope.memberships.items() if change}
        added = sum(len(change.added) for change in changed.values())
        removed = sum(len(change.removed) for change in changed.values())

        # Only a single dimension can be named in the event type
        dimension = next(iter(changed)) if len(changed) == 1 else None

        return resolver.resolve(
            scope.subject.kind if scope.subject else None,
            added=added,
            removed=removed,
            scalar_diff_present=scope.has_scalar_diff,
            subtype=scope.subject_subtype,
            lifecycle=scope.lifecycle,
            dimension=dimension,
        )

    def _collect_metas(self, scope: AggregationScope) -> EventmetaSet:
        metas = scope.metas.copy()
        for dimension, change in scope.memberships.items():
            if change.added:
                metas.upsert(f"added_{dimension}", Value.of_list(self._reference_values(change.added)))
            if change.removed:
                metas.upsert(f"removed_{dimension}", Value.of_list(self._reference_values(change.removed)))
        return metas

    def _reference_values(self, refs: Iterable[EntityReference]) -> List[Value]:
        return [self.normalizer.normalize(ref) for ref in refs]
