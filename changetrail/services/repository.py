"""
Event persistence on SQLAlchemy.

save() is the only way an event gets an id. Storage failures are rolled back
and surfaced as PersistError; nothing is retried here.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from changetrail.errors import ImmutableEventError, PersistError
from changetrail.models.event import ActorInfo, Event
from changetrail.models.properties import Eventmeta, EventmetaSet, Property, PropertyChangeSet
from changetrail.models.records import EventmetaRecord, EventRecord, PropertyRecord
from changetrail.models.references import EntityReference
from changetrail.models.values import Value
from changetrail.services.sessions import SESSION_DURATION, SESSION_END

logger = logging.getLogger(__name__)


def _key_type(key) -> str:
    """Entity keys are ints or strings depending on the kind; remember which."""
    return "int" if isinstance(key, int) else "str"


class EventRepository:
    """Reads and writes events. Binds references it loads to the resolver registry."""

    def __init__(self, db: Session, registry=None):
        self.db = db
        self.registry = registry

    def save(self, event: Event) -> Event:
        """Persist a new event and assign its id."""
        if event.id is not None:
            raise ImmutableEventError(f"Event {event.id} is already persisted.")

        record = self._to_record(event)
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("FAILED TO LOG EVENT: %s", event.event_type)
            raise PersistError(f"Could not save event '{event.event_type}'.") from e

        event.assign_id(record.id)
        logger.info("EVENT LOGGED: %s", event.event_type)
        return event

    def get(self, event_id: int) -> Optional[Event]:
        record = self.db.query(EventRecord).filter(EventRecord.id == event_id).first()
        return self._to_event(record) if record else None

    def latest_for_actor(self, user_id: int, event_type: str) -> Optional[Event]:
        """Most recent event of a type for one actor (used for session continuation)."""
        record = self.db.query(EventRecord).filter(
            EventRecord.user_id == user_id,
            EventRecord.event_type == event_type
        ).order_by(
            EventRecord.occurred_at.desc(),
            EventRecord.id.desc()
        ).first()
        return self._to_event(record) if record else None

    def list_events(
        self,
        search: Optional[str] = None,
        event_type: Optional[str] = None,
        user_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Event]:
        """Events newest first, optionally filtered."""
        query = self._filtered(search, event_type, user_id).order_by(
            EventRecord.occurred_at.desc(),
            EventRecord.id.desc()
        )
        return [self._to_event(record) for record in query.offset(offset).limit(limit).all()]

    def count_events(
        self,
        search: Optional[str] = None,
        event_type: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> int:
        return self._filtered(search, event_type, user_id).count()

    def extend_session(self, event_id: int, session_end: datetime, duration: str) -> Event:
        """
        Move the end of a stored session forward.

        This is the one update the log allows: a continuing session extends its
        record instead of adding a new one.
        """
        record = self.db.query(EventRecord).filter(EventRecord.id == event_id).first()
        if record is None:
            raise PersistError(f"Session event {event_id} not found.")

        values = {
            SESSION_END: Value.of_datetime(session_end).to_json(),
            SESSION_DURATION: Value.of_str(duration).to_json(),
        }
        try:
            for meta in record.metas:
                if meta.meta_key in values:
                    meta.meta_value = values.pop(meta.meta_key)
            # Keys the session record didn't have yet
            for key, value in values.items():
                record.metas.append(EventmetaRecord(position=len(record.metas), meta_key=key, meta_value=value))
            self.db.commit()
            self.db.refresh(record)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistError(f"Could not extend session event {event_id}.") from e

        return self._to_event(record)

    def _filtered(self, search: Optional[str], event_type: Optional[str], user_id: Optional[int]):
        query = self.db.query(EventRecord)
        if event_type:
            query = query.filter(EventRecord.event_type == event_type)
        if user_id is not None:
            query = query.filter(EventRecord.user_id == user_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                EventRecord.event_type.ilike(pattern),
                EventRecord.user_name.ilike(pattern),
                EventRecord.object_name.ilike(pattern),
                EventRecord.user_ip.ilike(pattern),
            ))
        return query

    def _to_record(self, event: Event) -> EventRecord:
        actor = event.actor
        subject = event.subject
        record = EventRecord(
            occurred_at=event.occurred_at.astimezone(timezone.utc),
            user_id=actor.user_id,
            user_name=actor.display_name,
            user_role=actor.role,
            user_ip=actor.ip,
            user_location=actor.location,
            user_agent=actor.user_agent,
            event_type=event.event_type,
            object_type=subject.kind if subject else None,
            object_subtype=event.subject_subtype,
            object_key=str(subject.key) if subject else None,
            object_key_type=_key_type(subject.key) if subject else None,
            object_name=subject.cached_name if subject else None,
        )
        for position, prop in enumerate(event.properties or []):
            record.properties.append(PropertyRecord(
                position=position,
                prop_key=prop.key,
                source=prop.source,
                old_value=prop.old_value.to_json(),
                new_value=None if prop.new_value is None else prop.new_value.to_json(),
            ))
        for position, meta in enumerate(event.metas or []):
            record.metas.append(EventmetaRecord(
                position=position,
                meta_key=meta.key,
                meta_value=meta.value.to_json(),
            ))
        return record

    def _to_event(self, record: EventRecord) -> Event:
        occurred_at = record.occurred_at
        # SQLite hands back naive datetimes; everything is stored in UTC
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)

        subject = None
        if record.object_type:
            key = int(record.object_key) if record.object_key_type == "int" else record.object_key
            subject = EntityReference(record.object_type, key, record.object_name, registry=self.registry)

        properties = PropertyChangeSet([
            Property(
                prop.prop_key,
                prop.source,
                Value.from_json(prop.old_value, registry=self.registry),
                None if prop.new_value is None else Value.from_json(prop.new_value, registry=self.registry),
            )
            for prop in record.properties
        ])
        metas = EventmetaSet([
            Eventmeta(meta.meta_key, Value.from_json(meta.meta_value, registry=self.registry))
            for meta in record.metas
        ])

        return Event(
            occurred_at=occurred_at,
            actor=ActorInfo(
                user_id=record.user_id,
                display_name=record.user_name,
                role=record.user_role,
                ip=record.user_ip,
                location=record.user_location,
                user_agent=record.user_agent,
            ),
            event_type=record.event_type,
            subject=subject,
            subject_subtype=record.object_subtype,
            properties=properties,
            metas=metas,
            id=record.id,
        )
