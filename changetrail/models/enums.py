"""Enums and constants for the change-tracking model."""
from enum import Enum


class EntityKind(str, Enum):
    """Kinds of trackable entity. Resolvers are registered per kind."""
    POST = "post"
    USER = "user"
    TERM = "term"
    COMMENT = "comment"
    PLUGIN = "plugin"
    THEME = "theme"
    OPTION = "option"
    TAXONOMY = "taxonomy"


class ValueKind(str, Enum):
    """Discriminants of the Value union. Values of different kinds are never equal."""
    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    DATETIME = "datetime"
    REFERENCE = "reference"
    LIST = "list"


class Lifecycle(str, Enum):
    """What happened to the subject entity during an aggregation scope."""
    CREATED = "Created"
    UPDATED = "Updated"
    DELETED = "Deleted"


class ScopeState(str, Enum):
    """An aggregation scope is Open until finalized. There is no way back."""
    OPEN = "Open"
    FINALIZED = "Finalized"


class ResolutionState(str, Enum):
    """
    Memoization state of an EntityReference.

    MISSING means the resolver was asked and the entity no longer exists, which
    is different from UNRESOLVED (nobody asked yet).
    """
    UNRESOLVED = "unresolved"
    MISSING = "missing"
    RESOLVED = "resolved"


class EventType:
    """Event types with special handling."""
    LOGIN = "User Login"
    LOGOUT = "User Logout"
    SESSION = "User Session"
    FAILED_LOGIN = "Failed Login"


# Logged even when the scope carries no property or membership changes
ALWAYS_LOG_EVENT_TYPES = frozenset({
    EventType.LOGIN,
    EventType.LOGOUT,
    EventType.SESSION,
    EventType.FAILED_LOGIN,
})


def kind_value(kind) -> str:
    """Plain string for an EntityKind or a free-form kind string."""
    if isinstance(kind, Enum):
        return kind.value
    return str(kind)


def kind_label(kind) -> str:
    """Capitalized kind used in fallback names, e.g. 'post' -> 'Post'."""
    value = kind_value(kind)
    return value[:1].upper() + value[1:]
