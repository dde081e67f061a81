"""
Lazy, polymorphic pointers to tracked entities.

An EntityReference knows the kind and key of an entity plus, optionally, the
name it had when it was last seen. Loading the live entity goes through the
resolver registered for its kind. The result of that lookup is memoized on the
reference, with an explicit tagged state so "not checked yet" and "checked,
entity is gone" are never confused.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

from changetrail.errors import ConfigurationError
from changetrail.models.enums import ResolutionState, kind_label, kind_value


@dataclass(frozen=True)
class ActiveReference:
    """The entity still exists; presentation may link to it."""
    url: Optional[str]
    label: str

    is_deleted = False


@dataclass(frozen=True)
class DeletedReference:
    """The entity no longer exists; only the remembered label is available."""
    label: str

    is_deleted = True


RenderableReference = Union[ActiveReference, DeletedReference]


class EntityReference:
    """
    Pointer to a trackable entity (post, user, term, comment, plugin, ...).

    Invariants:
    - key is never empty
    - kind is not validated here; an unknown kind fails with UnknownEntityKind
      the first time the reference is resolved
    - once resolved, the result is kept for the lifetime of the reference
    """

    def __init__(self, kind, key: Union[int, str], name: Optional[str] = None, registry=None):
        if key is None or key == "":
            raise ValueError("An entity reference needs a non-empty key.")
        self.kind = kind_value(kind)
        self.key = key
        self.cached_name = name
        self._registry = registry
        self._state = ResolutionState.UNRESOLVED
        self._entity: Any = None

    @classmethod
    def new(cls, kind, key: Union[int, str], name: Union[str, bool] = True, registry=None) -> "EntityReference":
        """
        Create a reference.

        name may be:
        - a string: used as the cached name
        - True: derived from the live entity now (left unset if it can't be found)
        - False: left unset
        """
        ref = cls(kind, key, registry=registry)
        if isinstance(name, str):
            ref.cached_name = name
        elif name is True:
            ref.ensure_name()
        return ref

    # Registry binding

    @property
    def registry(self):
        return self._registry

    def bind(self, registry) -> "EntityReference":
        """Attach a resolver registry. Any memoized lookup is discarded."""
        self._registry = registry
        self._state = ResolutionState.UNRESOLVED
        self._entity = None
        return self

    def _resolver(self):
        if self._registry is None:
            raise ConfigurationError(f"Reference to {self.kind} {self.key} is not bound to a resolver registry.")
        return self._registry.get(self.kind)

    # Resolution

    @property
    def resolution_state(self) -> ResolutionState:
        return self._state

    def resolve_object(self) -> Any:
        """Return the live entity, or None if it no longer exists."""
        if self._state != ResolutionState.UNRESOLVED:
            return self._entity

        resolver = self._resolver()
        entity = resolver.load(self.key) if resolver.exists(self.key) else None

        if entity is None:
            self._state = ResolutionState.MISSING
        else:
            self._state = ResolutionState.RESOLVED
        self._entity = entity
        return entity

    @property
    def exists(self) -> bool:
        return self.resolve_object() is not None

    def fallback_name(self) -> str:
        """The remembered name, or a synthesized one like 'Post 12'."""
        if self.cached_name:
            return self.cached_name
        return f"{kind_label(self.kind)} {self.key}"

    def resolve_name(self) -> str:
        """Live name first, then the remembered name, then a synthesized one."""
        if self.resolve_object() is not None:
            live_name = self._resolver().get_name(self.key)
            if live_name:
                return live_name
        return self.fallback_name()

    def ensure_name(self) -> Optional[str]:
        """Fill in cached_name from the live entity if it is not set yet."""
        if not self.cached_name and self.resolve_object() is not None:
            self.cached_name = self._resolver().get_name(self.key) or None
        return self.cached_name

    def display_tag(self) -> RenderableReference:
        """
        Decide how the reference should be presented.

        Active if the entity can still be resolved (the resolver supplies url
        and label), Deleted with the fallback label otherwise.
        """
        if self.resolve_object() is None:
            return DeletedReference(self.fallback_name())
        return self._resolver().get_display_tag(self.key, self.cached_name)

    def get_core_properties(self) -> list:
        """The properties that identify the entity, as Property objects."""
        return list(self._resolver().get_core_properties(self.key))

    # Serialization

    def to_dict(self) -> dict:
        return {"type": self.kind, "key": self.key, "name": self.cached_name}

    @classmethod
    def from_dict(cls, data: dict, registry=None) -> "EntityReference":
        return cls(data["type"], data["key"], data.get("name"), registry=registry)

    # Identity

    def __eq__(self, other):
        if not isinstance(other, EntityReference):
            return NotImplemented
        return self.kind == other.kind and str(self.key) == str(other.key)

    def __hash__(self):
        return hash((self.kind, str(self.key)))

    def __repr__(self):
        return f"EntityReference({self.kind!r}, {self.key!r}, name={self.cached_name!r})"
