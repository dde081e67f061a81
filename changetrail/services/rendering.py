"""
Read-model helpers for displaying events.

These turn an Event into plain labels and rows. Markup is left to whoever
consumes the rows.
"""
from dataclasses import dataclass
from datetime import tzinfo
from typing import Iterable, List, Optional

from changetrail.errors import ConfigurationError
from changetrail.models.enums import ValueKind
from changetrail.models.event import Event
from changetrail.models.references import ActiveReference, DeletedReference, EntityReference, RenderableReference
from changetrail.models.values import Value

HIDDEN = "(hidden)"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Keys whose values are never shown
SECRET_KEYS = frozenset({"user_pass", "user_activation_key"})

SPECIAL_KEY_LABELS = {
    "user_pass": "Password",
    "show_admin_bar_front": "Show toolbar",
    "user_registered": "Registered (UTC)",
    "post_date": "Created",
    "post_date_gmt": "Created (UTC)",
    "post_modified": "Last modified",
    "post_modified_gmt": "Last modified (UTC)",
}


@dataclass(frozen=True)
class PropertyRow:
    key: str
    label: str
    before: str
    after: Optional[str] = None


@dataclass(frozen=True)
class PropertyTable:
    """Two columns (Property, Value) for snapshots, three (Property, Before, After) for changes."""
    columns: int
    rows: List[PropertyRow]


@dataclass(frozen=True)
class MetaRow:
    key: str
    label: str
    value: str


def make_key_readable(key: str, prefixes_to_ignore: Optional[Iterable[str]] = None) -> str:
    """
    Turn a storage key into a label, e.g. 'post_title' -> 'Title' when 'post' is ignored.

    Leading prefixes are stripped while more than one word remains.
    """
    if key in SPECIAL_KEY_LABELS:
        return SPECIAL_KEY_LABELS[key]

    words = key.split("_")
    ignored = set(prefixes_to_ignore or [])
    while len(words) > 1 and words[0] in ignored:
        words = words[1:]

    text = " ".join(words)
    return text[:1].upper() + text[1:]


def reference_tag(ref: EntityReference) -> RenderableReference:
    """
    display_tag with a generic fallback.

    An unknown or unbound kind must not break the whole page, so it is shown
    as a plain label.
    """
    try:
        return ref.display_tag()
    except ConfigurationError:
        return ActiveReference(url=None, label=ref.fallback_name())


def reference_text(ref: EntityReference) -> str:
    tag = reference_tag(ref)
    if isinstance(tag, DeletedReference):
        return f"{tag.label} (deleted)"
    return tag.label


def value_to_text(value: Optional[Value], tz: Optional[tzinfo] = None) -> str:
    """Plain-text rendering of a Value; absent and null values render empty."""
    if value is None or value.kind == ValueKind.NULL:
        return ""
    if value.kind == ValueKind.BOOLEAN:
        return "Yes" if value.data else "No"
    if value.kind == ValueKind.DATETIME:
        when = value.data.astimezone(tz) if tz else value.data
        return when.strftime(DATETIME_FORMAT)
    if value.kind == ValueKind.REFERENCE:
        return reference_text(value.data)
    if value.kind == ValueKind.LIST:
        return ", ".join(value_to_text(item, tz) for item in value.data)
    return str(value.data)


def property_table(event: Event, tz: Optional[tzinfo] = None) -> PropertyTable:
    """Rows for the event's properties, with secrets hidden."""
    props = list(event.properties or [])
    columns = 3 if any(not prop.is_snapshot for prop in props) else 2
    prefixes = ["wp"]
    if event.subject is not None:
        prefixes.append(event.subject.kind)

    rows = []
    for prop in props:
        secret = prop.key in SECRET_KEYS
        before = HIDDEN if secret else value_to_text(prop.old_value, tz)
        after = None
        if columns == 3:
            if secret and prop.new_value is not None:
                after = HIDDEN
            else:
                after = value_to_text(prop.new_value, tz)
        rows.append(PropertyRow(prop.key, make_key_readable(prop.key, prefixes), before, after))

    return PropertyTable(columns=columns, rows=rows)


def meta_rows(event: Event, tz: Optional[tzinfo] = None) -> List[MetaRow]:
    return [
        MetaRow(meta.key, make_key_readable(meta.key), value_to_text(meta.value, tz))
        for meta in event.metas or []
    ]
