"""
The finished event record.

Events are built through Event.create, a filtered factory that returns None for
actors whose role is not tracked. Once an event leaves the aggregator it has no
setters; the persistence layer assigns its id exactly once, after which the
event is frozen.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from changetrail.errors import ImmutableEventError
from changetrail.models.enums import EventType
from changetrail.models.properties import Eventmeta, EventmetaSet, Property, PropertyChangeSet
from changetrail.models.references import EntityReference
from changetrail.models.values import Value


@dataclass(frozen=True)
class ActorInfo:
    """Who did it. user_id 0 is an anonymous visitor."""
    user_id: int
    display_name: str
    role: str
    ip: Optional[str] = None
    location: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def anonymous(cls, ip: Optional[str] = None, user_agent: Optional[str] = None) -> "ActorInfo":
        return cls(user_id=0, display_name="Unknown", role="none", ip=ip, user_agent=user_agent)

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == 0

    @property
    def roles(self) -> List[str]:
        """The role field may hold several comma-separated roles."""
        return [role.strip() for role in self.role.split(",") if role.strip()]

    def has_tracked_role(self, tracked_roles: Iterable[str]) -> bool:
        if self.is_anonymous:
            return False
        tracked = set(tracked_roles)
        return any(role in tracked for role in self.roles)


class Event:
    """
    One logged, user-attributable change or notable occurrence.

    Invariants:
    - Never constructed for an untracked actor (see Event.create)
    - Read-only once returned from the aggregator
    - id is assigned once, by persistence
    - Two events are equal only if both are persisted with the same id
    """

    def __init__(
        self,
        occurred_at: datetime,
        actor: ActorInfo,
        event_type: str,
        subject: Optional[EntityReference] = None,
        subject_subtype: Optional[str] = None,
        properties: Optional[PropertyChangeSet] = None,
        metas: Optional[EventmetaSet] = None,
        id: Optional[int] = None,
    ):
        self._id = id
        self._occurred_at = occurred_at
        self._actor = actor
        self._event_type = event_type
        self._subject = subject
        self._subject_subtype = subject_subtype
        self._properties = properties.copy() if properties else PropertyChangeSet()
        self._metas = metas.copy() if metas else EventmetaSet()

    @classmethod
    def create(
        cls,
        event_type: str,
        subject: Optional[EntityReference] = None,
        metas: Optional[Union[EventmetaSet, Iterable[Eventmeta]]] = None,
        properties: Optional[Union[PropertyChangeSet, Iterable[Property]]] = None,
        actor: Optional[ActorInfo] = None,
        tracked_roles: Iterable[str] = (),
        subject_subtype: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Optional["Event"]:
        """
        Build a new event, or return None if the actor isn't tracked.

        Failed logins bypass the role filter because there is no authenticated
        actor yet. When the subject is bound to a resolver registry and still
        exists, its core properties are collected first and the given
        properties override them key by key.
        """
        if actor is None:
            actor = ActorInfo.anonymous()

        # Untracked actors never produce events
        if event_type != EventType.FAILED_LOGIN and not actor.has_tracked_role(tracked_roles):
            return None

        props = PropertyChangeSet()
        if subject is not None and subject.registry is not None:
            # Remember the name now; it is the only label left once the entity is deleted
            subject.ensure_name()
            if subject.exists:
                for prop in subject.get_core_properties():
                    props.upsert(prop.key, prop.source, prop.old_value, prop.new_value)

        for prop in properties or []:
            props.upsert(prop.key, prop.source, prop.old_value, prop.new_value)

        return cls(
            occurred_at=occurred_at or datetime.now(timezone.utc),
            actor=actor,
            event_type=event_type,
            subject=subject,
            subject_subtype=subject_subtype,
            properties=props,
            metas=EventmetaSet(list(metas or [])),
        )

    # Read-only accessors

    @property
    def id(self) -> Optional[int]:
        return self._id

    @property
    def occurred_at(self) -> datetime:
        return self._occurred_at

    @property
    def actor(self) -> ActorInfo:
        return self._actor

    @property
    def event_type(self) -> str:
        return self._event_type

    @property
    def subject(self) -> Optional[EntityReference]:
        return self._subject

    @property
    def subject_subtype(self) -> Optional[str]:
        return self._subject_subtype

    @property
    def properties(self) -> Optional[PropertyChangeSet]:
        """A copy of the change set, or None if there are no properties."""
        return self._properties.copy() if self._properties else None

    @property
    def metas(self) -> Optional[EventmetaSet]:
        """A copy of the eventmetas, or None if there are none."""
        return self._metas.copy() if self._metas else None

    def has_property(self, key: str) -> bool:
        return self._properties.has(key)

    def get_property(self, key: str) -> Optional[Property]:
        prop = self._properties.get(key)
        if prop is None:
            return None
        return Property(prop.key, prop.source, prop.old_value, prop.new_value)

    def has_meta(self, key: str) -> bool:
        return self._metas.has(key)

    def get_meta_value(self, key: str) -> Optional[Value]:
        return self._metas.get_value(key)

    # Persistence

    def assign_id(self, event_id: int) -> None:
        """Called by the repository after a successful save."""
        if self._id is not None:
            raise ImmutableEventError(f"Event {self._id} is already persisted.")
        self._id = event_id

    # Identity

    def __eq__(self, other):
        if not isinstance(other, Event):
            return NotImplemented
        if self._id is None or other._id is None:
            # Transient events are only ever the same as themselves
            return self is other
        return self._id == other._id

    __hash__ = None

    def __repr__(self):
        return f"Event(id={self._id!r}, event_type={self._event_type!r}, subject={self._subject!r})"
