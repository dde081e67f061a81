"""API routes for reading the event log."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from changetrail.api.schemas import (
    ActorResponse,
    EventDetailResponse,
    EventPageResponse,
    EventSummaryResponse,
    MetaRowResponse,
    PropertyRowResponse,
    ReferenceResponse,
)
from changetrail.config import settings
from changetrail.database import get_db
from changetrail.models.event import Event
from changetrail.models.references import DeletedReference, EntityReference
from changetrail.services.normalizer import zone_from_name
from changetrail.services.rendering import meta_rows, property_table, reference_tag
from changetrail.services.repository import EventRepository
from changetrail.services.resolvers import ResolverRegistry

router = APIRouter()


def get_registry(request: Request) -> ResolverRegistry:
    """The resolver registry wired up at application start."""
    return request.app.state.registry


def get_repository(db: Session = Depends(get_db), registry: ResolverRegistry = Depends(get_registry)) -> EventRepository:
    return EventRepository(db, registry=registry)


def _reference_response(ref: Optional[EntityReference]) -> Optional[ReferenceResponse]:
    if ref is None:
        return None
    tag = reference_tag(ref)
    if isinstance(tag, DeletedReference):
        return ReferenceResponse(kind=ref.kind, key=ref.key, label=tag.label, deleted=True)
    return ReferenceResponse(kind=ref.kind, key=ref.key, label=tag.label, url=tag.url)


def _summary(event: Event) -> dict:
    actor = event.actor
    return dict(
        id=event.id,
        occurred_at=event.occurred_at,
        event_type=event.event_type,
        actor=ActorResponse(
            user_id=actor.user_id,
            display_name=actor.display_name,
            role=actor.role,
            ip=actor.ip,
            location=actor.location,
            user_agent=actor.user_agent,
        ),
        subject=_reference_response(event.subject),
        subject_subtype=event.subject_subtype,
    )


@router.get("/events", response_model=EventPageResponse)
def list_events(
    search: Optional[str] = None,
    event_type: Optional[str] = None,
    user_id: Optional[int] = None,
    limit: int = Query(settings.items_per_page, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repository: EventRepository = Depends(get_repository),
):
    """List logged events, newest first."""
    events = repository.list_events(search=search, event_type=event_type, user_id=user_id, limit=limit, offset=offset)
    return EventPageResponse(
        total=repository.count_events(search=search, event_type=event_type, user_id=user_id),
        limit=limit,
        offset=offset,
        items=[EventSummaryResponse(**_summary(event)) for event in events],
    )


@router.get("/events/{event_id}", response_model=EventDetailResponse)
def get_event(event_id: int, repository: EventRepository = Depends(get_repository)):
    """Get one event with its property table and metadata."""
    event = repository.get(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    site_zone = zone_from_name(settings.timezone)
    table = property_table(event, site_zone)
    return EventDetailResponse(
        **_summary(event),
        columns=table.columns,
        properties=[
            PropertyRowResponse(key=row.key, label=row.label, before=row.before, after=row.after)
            for row in table.rows
        ],
        metas=[
            MetaRowResponse(key=row.key, label=row.label, value=row.value)
            for row in meta_rows(event, site_zone)
        ],
    )
