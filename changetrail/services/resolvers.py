"""
Resolver registry: how entity references reach live entities.

Each entity kind gets one EntityResolver implementation, registered at
startup. References look their resolver up by kind when they are resolved;
a kind with no resolver fails with UnknownEntityKind.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Union

from changetrail.errors import ConfigurationError, UnknownEntityKind
from changetrail.models.enums import EntityKind, kind_value
from changetrail.models.references import ActiveReference, EntityReference, RenderableReference

logger = logging.getLogger(__name__)

Key = Union[int, str]


class EntityResolver(ABC):
    """Data access for one entity kind. Implementations live outside the core."""

    @abstractmethod
    def exists(self, key: Key) -> bool:
        """Whether the entity still exists."""

    @abstractmethod
    def load(self, key: Key) -> Optional[Any]:
        """The live entity, or None."""

    @abstractmethod
    def get_name(self, key: Key) -> Optional[str]:
        """Display name of the live entity, or None if it doesn't exist."""

    @abstractmethod
    def get_core_properties(self, key: Key) -> List:
        """The identifying properties of the entity, as Property objects."""

    def get_display_tag(self, key: Key, fallback_name: Optional[str] = None) -> RenderableReference:
        """Presentation variant for an existing entity. Override to supply a url."""
        return ActiveReference(url=None, label=self.get_name(key) or fallback_name or str(key))


class ResolverRegistry:
    """Mapping from entity kind to its resolver."""

    def __init__(self, resolvers: Optional[Dict[Any, EntityResolver]] = None):
        self._resolvers: Dict[str, EntityResolver] = {}
        for kind, resolver in (resolvers or {}).items():
            self.register(kind, resolver)

    def register(self, kind, resolver: EntityResolver) -> None:
        if not isinstance(resolver, EntityResolver):
            raise ConfigurationError(
                f"Resolver for '{kind_value(kind)}' must implement EntityResolver, got {type(resolver).__name__}."
            )
        self._resolvers[kind_value(kind)] = resolver
        logger.debug("Registered resolver %s for kind %r", type(resolver).__name__, kind_value(kind))

    def get(self, kind) -> EntityResolver:
        resolver = self._resolvers.get(kind_value(kind))
        if resolver is None:
            raise UnknownEntityKind(kind_value(kind))
        return resolver

    def has(self, kind) -> bool:
        return kind_value(kind) in self._resolvers

    def missing_kinds(self, kinds: Iterable = tuple(EntityKind)) -> List[str]:
        """Kinds with no registered resolver; empty when the wiring is complete."""
        return [kind_value(kind) for kind in kinds if kind_value(kind) not in self._resolvers]

    def new_reference(self, kind, key: Key, name: Union[str, bool] = True) -> EntityReference:
        """Create a reference bound to this registry. See EntityReference.new."""
        return EntityReference.new(kind, key, name=name, registry=self)
