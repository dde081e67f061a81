"""
Storage rows for persisted events.

These are storage details of EventRepository, not part of the event model.
Values are stored as tagged JSON documents (see Value.to_json) so every kind
round-trips without loss.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import relationship

from changetrail.database import Base


class EventRecord(Base):
    """
    One row per logged event.

    Invariants:
    - Written once; only the session metas of a "User Session" event are
      extended afterwards
    - object_name is the subject's name at the time of the event and is the
      only label left once the subject is deleted
    """
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Actor
    user_id = Column(Integer, nullable=False, index=True)  # 0 for anonymous
    user_name = Column(String, nullable=False)
    user_role = Column(String, nullable=False)
    user_ip = Column(String, nullable=True)
    user_location = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    event_type = Column(String, nullable=False, index=True)  # e.g., "Post Updated"

    # Subject
    object_type = Column(String, nullable=True)  # e.g., "post", "user", "plugin"
    object_subtype = Column(String, nullable=True)  # post type or taxonomy
    object_key = Column(String, nullable=True, index=True)
    object_key_type = Column(String, nullable=True)  # "int" or "str"
    object_name = Column(String, nullable=True)

    properties = relationship(
        "PropertyRecord",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="PropertyRecord.position",
    )
    metas = relationship(
        "EventmetaRecord",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventmetaRecord.position",
    )


class PropertyRecord(Base):
    __tablename__ = "event_properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # insertion order
    prop_key = Column(String, nullable=False)
    source = Column(String, nullable=True)  # origin table
    old_value = Column(JSON, nullable=False)
    new_value = Column(JSON, nullable=True)  # NULL for snapshots

    event = relationship("EventRecord", back_populates="properties")


class EventmetaRecord(Base):
    __tablename__ = "event_metas"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    meta_key = Column(String, nullable=False)
    meta_value = Column(JSON, nullable=False)

    event = relationship("EventRecord", back_populates="metas")
