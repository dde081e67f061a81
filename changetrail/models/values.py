"""
Canonical typed values for property observations.

A Value is a discriminated union over null, boolean, integer, float, string,
datetime, entity reference and ordered list. Equality is structural:

- Values of different kinds are never equal (so True != 1 and 1 != 1.0).
- Datetimes are compared at second granularity in UTC.
- References are compared by (kind, key), never by cached name.
- Lists are compared element-wise, in order.
"""
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from changetrail.models.enums import ValueKind
from changetrail.models.references import EntityReference


class Value:
    """An immutable, normalized value. Build instances with the of_* constructors."""

    __slots__ = ("kind", "data")

    def __init__(self, kind: ValueKind, data: Any = None):
        object.__setattr__(self, "kind", ValueKind(kind))
        object.__setattr__(self, "data", data)

    def __setattr__(self, name, value):
        raise AttributeError("Value is immutable")

    # Constructors

    @classmethod
    def null(cls) -> "Value":
        return cls(ValueKind.NULL)

    @classmethod
    def of_bool(cls, data: bool) -> "Value":
        return cls(ValueKind.BOOLEAN, bool(data))

    @classmethod
    def of_int(cls, data: int) -> "Value":
        return cls(ValueKind.INTEGER, int(data))

    @classmethod
    def of_float(cls, data: float) -> "Value":
        return cls(ValueKind.FLOAT, float(data))

    @classmethod
    def of_str(cls, data: str) -> "Value":
        return cls(ValueKind.STRING, str(data))

    @classmethod
    def of_datetime(cls, data: datetime) -> "Value":
        """Naive datetimes are taken to be UTC. Callers wanting a site zone anchor first."""
        if data.tzinfo is None:
            data = data.replace(tzinfo=timezone.utc)
        return cls(ValueKind.DATETIME, data)

    @classmethod
    def of_reference(cls, data: EntityReference) -> "Value":
        return cls(ValueKind.REFERENCE, data)

    @classmethod
    def of_list(cls, items: Iterable["Value"]) -> "Value":
        items = tuple(items)
        for item in items:
            if not isinstance(item, Value):
                raise TypeError(f"List items must be Values, got {type(item).__name__}")
        return cls(ValueKind.LIST, items)

    # Inspection

    @property
    def is_null(self) -> bool:
        return self.kind == ValueKind.NULL

    def to_python(self) -> Any:
        """Plain Python form: lists become lists, references stay references."""
        if self.kind == ValueKind.LIST:
            return [item.to_python() for item in self.data]
        return self.data

    def _identity(self):
        if self.kind == ValueKind.FLOAT and math.isnan(self.data):
            # NaN never equals itself; an unchanged NaN is not a change
            return "nan"
        if self.kind == ValueKind.DATETIME:
            # Second granularity in a fixed zone
            return int(self.data.astimezone(timezone.utc).timestamp() // 1)
        if self.kind == ValueKind.REFERENCE:
            return (self.data.kind, str(self.data.key))
        if self.kind == ValueKind.LIST:
            return tuple((item.kind, item._identity()) for item in self.data)
        return self.data

    def __eq__(self, other):
        if not isinstance(other, Value):
            return NotImplemented
        return self.kind == other.kind and self._identity() == other._identity()

    def __hash__(self):
        return hash((self.kind, self._identity()))

    def __repr__(self):
        if self.kind == ValueKind.NULL:
            return "Value(null)"
        return f"Value({self.kind.value}, {self.data!r})"

    # Serialization

    def to_json(self) -> dict:
        """Tagged JSON document that round-trips every kind."""
        if self.kind == ValueKind.NULL:
            return {"kind": self.kind.value}
        if self.kind == ValueKind.DATETIME:
            return {"kind": self.kind.value, "value": self.data.isoformat()}
        if self.kind == ValueKind.REFERENCE:
            return {"kind": self.kind.value, "value": self.data.to_dict()}
        if self.kind == ValueKind.LIST:
            return {"kind": self.kind.value, "value": [item.to_json() for item in self.data]}
        return {"kind": self.kind.value, "value": self.data}

    @classmethod
    def from_json(cls, doc: dict, registry=None) -> "Value":
        """
        Rebuild a Value from to_json output.

        References are bound to the given resolver registry so they can be
        resolved again when the event is displayed.
        """
        kind = ValueKind(doc["kind"])
        raw = doc.get("value")
        if kind == ValueKind.NULL:
            return cls.null()
        if kind == ValueKind.DATETIME:
            return cls.of_datetime(datetime.fromisoformat(raw))
        if kind == ValueKind.REFERENCE:
            return cls.of_reference(EntityReference.from_dict(raw, registry=registry))
        if kind == ValueKind.LIST:
            return cls.of_list(cls.from_json(item, registry=registry) for item in raw)
        return cls(kind, raw)


def equals(a: Optional[Value], b: Optional[Value]) -> bool:
    """Structural equality. An absent value only equals another absent value."""
    if a is None or b is None:
        return a is None and b is None
    return a == b
