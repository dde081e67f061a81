"""Pydantic schemas for the event log read API."""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel


class ActorResponse(BaseModel):
    user_id: int
    display_name: str
    role: str
    ip: Optional[str]
    location: Optional[str]
    user_agent: Optional[str]


class ReferenceResponse(BaseModel):
    """How to show an entity reference: a link if it still exists, a label if not."""
    kind: str
    key: Union[int, str]
    label: str
    url: Optional[str] = None
    deleted: bool = False


class PropertyRowResponse(BaseModel):
    key: str
    label: str
    before: str
    after: Optional[str] = None


class MetaRowResponse(BaseModel):
    key: str
    label: str
    value: str


class EventSummaryResponse(BaseModel):
    id: int
    occurred_at: datetime
    event_type: str
    actor: ActorResponse
    subject: Optional[ReferenceResponse] = None
    subject_subtype: Optional[str] = None


class EventDetailResponse(EventSummaryResponse):
    # 2 = snapshot (Property, Value), 3 = change (Property, Before, After)
    columns: int
    properties: List[PropertyRowResponse] = []
    metas: List[MetaRowResponse] = []


class EventPageResponse(BaseModel):
    total: int
    limit: int
    offset: int
    items: List[EventSummaryResponse]
