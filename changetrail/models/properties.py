"""
Field-level observations (Property) and free-form metadata (Eventmeta).

Both live in insertion-ordered collections keyed by a unique string key.
Re-inserting a key replaces the entry in place instead of duplicating it.
"""
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from changetrail.errors import MissingPropertyKey
from changetrail.models.values import Value


@dataclass
class Property:
    """
    One field-level observation.

    A property with no new_value is a snapshot (the value at the time of the
    event) and renders as a single column. A property with both values is a
    change, even when the two values happen to be equal.
    """
    key: str
    source: Optional[str]
    old_value: Value
    new_value: Optional[Value] = None

    @property
    def is_snapshot(self) -> bool:
        return self.new_value is None

    def to_json(self) -> dict:
        return {
            "key": self.key,
            "source": self.source,
            "old_value": self.old_value.to_json(),
            "new_value": None if self.new_value is None else self.new_value.to_json(),
        }


class PropertyChangeSet:
    """Ordered mapping from property key to Property."""

    def __init__(self, properties: Optional[List[Property]] = None):
        self._props: Dict[str, Property] = {}
        for prop in properties or []:
            self.upsert(prop.key, prop.source, prop.old_value, prop.new_value)

    def upsert(self, key: str, source: Optional[str], old_value: Value, new_value: Optional[Value] = None) -> Property:
        """
        Insert a property, or overwrite source / old / new of an existing one.

        An existing key keeps its original position. Equal old and new values
        are kept as given; dropping no-op changes is the caller's job.
        """
        prop = self._props.get(key)
        if prop is None:
            prop = Property(key, source, old_value, new_value)
            self._props[key] = prop
        else:
            prop.source = source
            prop.old_value = old_value
            prop.new_value = new_value
        return prop

    def get(self, key: str) -> Optional[Property]:
        return self._props.get(key)

    def has(self, key: str) -> bool:
        return key in self._props

    def merge(self, other: "PropertyChangeSet") -> "PropertyChangeSet":
        """
        Fold another change set into this one: earliest old, latest new.

        For a key present in both, this set's old_value is kept (it was seen
        first, so it is the truer baseline) and other's new_value replaces ours
        when other has one. Keys only in other are appended in other's order.
        """
        for prop in other:
            mine = self._props.get(prop.key)
            if mine is None:
                self.upsert(prop.key, prop.source, prop.old_value, prop.new_value)
                continue

            if prop.new_value is not None:
                mine.new_value = prop.new_value
            if mine.source is None:
                mine.source = prop.source
        return self

    def set_old_value(self, key: str, value: Value) -> None:
        if key not in self._props:
            raise MissingPropertyKey(key)
        self._props[key].old_value = value

    def set_new_value(self, key: str, value: Optional[Value]) -> None:
        if key not in self._props:
            raise MissingPropertyKey(key)
        self._props[key].new_value = value

    def keys(self) -> List[str]:
        return list(self._props)

    def copy(self) -> "PropertyChangeSet":
        return PropertyChangeSet(list(self))

    def __contains__(self, key) -> bool:
        return key in self._props

    def __iter__(self) -> Iterator[Property]:
        return iter(list(self._props.values()))

    def __len__(self) -> int:
        return len(self._props)

    def __bool__(self) -> bool:
        return bool(self._props)

    def __repr__(self):
        return f"PropertyChangeSet({list(self._props.values())!r})"


@dataclass
class Eventmeta:
    """Metadata attached to an event that is not a field of the subject entity."""
    key: str
    value: Value

    def to_json(self) -> dict:
        return {"key": self.key, "value": self.value.to_json()}


class EventmetaSet:
    """Ordered mapping from meta key to Eventmeta, with the same uniqueness rule as properties."""

    def __init__(self, metas: Optional[List[Eventmeta]] = None):
        self._metas: Dict[str, Eventmeta] = {}
        for meta in metas or []:
            self.upsert(meta.key, meta.value)

    def upsert(self, key: str, value: Value) -> Eventmeta:
        meta = self._metas.get(key)
        if meta is None:
            meta = Eventmeta(key, value)
            self._metas[key] = meta
        else:
            meta.value = value
        return meta

    def get(self, key: str) -> Optional[Eventmeta]:
        return self._metas.get(key)

    def get_value(self, key: str) -> Optional[Value]:
        meta = self._metas.get(key)
        return meta.value if meta else None

    def has(self, key: str) -> bool:
        return key in self._metas

    def keys(self) -> List[str]:
        return list(self._metas)

    def copy(self) -> "EventmetaSet":
        return EventmetaSet(list(self))

    def __contains__(self, key) -> bool:
        return key in self._metas

    def __iter__(self) -> Iterator[Eventmeta]:
        return iter(list(self._metas.values()))

    def __len__(self) -> int:
        return len(self._metas)

    def __bool__(self) -> bool:
        return bool(self._metas)

    def __repr__(self):
        return f"EventmetaSet({list(self._metas.values())!r})"
