"""
Event type policy: turning what happened into a human-readable event type.

Event types read like "Post Updated", "Post Categories Added" or
"Page Trashed". The subject label comes from the entity kind (or its subtype,
e.g. the post type), the verb from the lifecycle and from what kind of change
was observed.
"""
from typing import Dict, Optional, Tuple

from changetrail.models.enums import Lifecycle, kind_label

# Post status transitions, keyed by the new status
STATUS_TRANSITION_VERBS = {
    "publish": "Published",
    "draft": "Drafted",
    "pending": "Pending",
    "private": "Privatized",
    "trash": "Trashed",
    "auto-draft": "Auto-drafted",
    "inherit": "Inherited",
    "future": "Scheduled",
    "request-pending": "Request Pending",
    "request-confirmed": "Request Confirmed",
    "request-failed": "Request Failed",
    "request-completed": "Request Completed",
}

DEFAULT_SUBTYPE_LABELS = {
    "post": "Post",
    "page": "Page",
    "attachment": "Media",
    "nav_menu_item": "Menu Item",
    "category": "Category",
    "post_tag": "Tag",
}

DEFAULT_DIMENSION_LABELS = {
    "category": ("Category", "Categories"),
    "post_tag": ("Tag", "Tags"),
    "nav_menu": ("Menu", "Menus"),
    "post_format": ("Format", "Formats"),
}


def membership_verb(added: int, removed: int) -> Optional[str]:
    """
    Verb for a set-membership change.

    Both added and removed -> "Updated"; only added -> "Added";
    only removed -> "Removed"; neither -> None.
    """
    if added and removed:
        return "Updated"
    if added:
        return "Added"
    if removed:
        return "Removed"
    return None


def status_transition_verb(old_status: str, new_status: str) -> str:
    """Verb for a post status transition. Leaving the trash is always a restore."""
    if old_status == "trash":
        return "Restored"
    return STATUS_TRANSITION_VERBS.get(new_status, "Status Changed")


def _humanize(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in name.replace("-", "_").split("_") if word)


class EventTypeResolver:
    """
    Maps (entity kind, added count, removed count, scalar diff present) to an event type.

    Created and Deleted lifecycles always win. A pure membership change in a
    single dimension is reported against that dimension; everything else is
    an update of the subject.
    """

    def __init__(
        self,
        kind_labels: Optional[Dict[str, str]] = None,
        subtype_labels: Optional[Dict[str, str]] = None,
        dimension_labels: Optional[Dict[str, Tuple[str, str]]] = None,
    ):
        self.kind_labels = dict(kind_labels or {})
        self.subtype_labels = {**DEFAULT_SUBTYPE_LABELS, **(subtype_labels or {})}
        self.dimension_labels = {**DEFAULT_DIMENSION_LABELS, **(dimension_labels or {})}

    def subject_label(self, kind: Optional[str], subtype: Optional[str] = None) -> str:
        if subtype:
            return self.subtype_labels.get(subtype, _humanize(subtype))
        if kind is None:
            return "Site"
        return self.kind_labels.get(kind, kind_label(kind))

    def dimension_label(self, dimension: str, count: int) -> str:
        """Singular when exactly one entity moved, plural otherwise."""
        singular, plural = self.dimension_labels.get(dimension, (_humanize(dimension), _humanize(dimension)))
        return singular if count == 1 else plural

    def resolve(
        self,
        kind: Optional[str],
        added: int = 0,
        removed: int = 0,
        scalar_diff_present: bool = False,
        subtype: Optional[str] = None,
        lifecycle: Lifecycle = Lifecycle.UPDATED,
        dimension: Optional[str] = None,
    ) -> str:
        subject = self.subject_label(kind, subtype)

        if lifecycle in (Lifecycle.CREATED, Lifecycle.DELETED):
            return f"{subject} {lifecycle.value}"

        verb = membership_verb(added, removed)
        if verb and dimension and not scalar_diff_present:
            return f"{subject} {self.dimension_label(dimension, added + removed)} {verb}"

        return f"{subject} {Lifecycle.UPDATED.value}"
