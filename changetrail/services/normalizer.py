"""
Normalization of raw storage values into canonical Values.

Raw values arrive from many places: database strings, JSON-encoded blobs,
already-typed Python scalars, datetimes, references. The normalizer turns each
one into a Value so that change detection compares meaning, not formatting
(so "0" and 0 are the same integer). Decimal strings stay strings:
"6.1" and "6.10" are different versions, not the same number.

Normalization never raises for odd input. Anything that looks typed but can't
be parsed is kept as a string.
"""
import json
import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo

from changetrail.errors import NormalizationAmbiguity
from changetrail.models.references import EntityReference
from changetrail.models.values import Value, equals

logger = logging.getLogger(__name__)

INTEGER_PATTERN = re.compile(r"^-?(0|[1-9][0-9]*)$")
SITE_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
ISO_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$")

BOOLEAN_STRINGS = {"1": True, "true": True, "0": False, "false": False, "": False}


def zone_from_name(name: str) -> tzinfo:
    """IANA zone by name; UTC never needs the system zone database."""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class PropertyKeyPolicy:
    """
    Which property keys are recorded at all.

    Keys on the denylist are never recorded. When an allowlist is given, only
    keys on it are recorded.
    """

    def __init__(self, denylist: Iterable[str] = (), allowlist: Optional[Iterable[str]] = None):
        self.denylist = frozenset(denylist)
        self.allowlist = None if allowlist is None else frozenset(allowlist)

    def allows(self, key: str) -> bool:
        if key in self.denylist:
            return False
        return self.allowlist is None or key in self.allowlist


class ValueNormalizer:
    """
    Converts raw values into Values.

    boolean_keys: keys whose "0"/"1" strings are booleans. Everywhere else they
        stay integers, so numeric ids are never misread as flags.
    reference_keys: key -> entity kind table for foreign-key-like keys. Ids
        under those keys are wrapped as references.
    """

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        boolean_keys: Iterable[str] = (),
        reference_keys: Optional[Mapping[str, Any]] = None,
        registry=None,
    ):
        self.tz = tz or timezone.utc
        self.boolean_keys = frozenset(boolean_keys)
        self.reference_keys: Dict[str, Any] = dict(reference_keys or {})
        self.registry = registry

    @classmethod
    def from_settings(cls, settings, registry=None) -> "ValueNormalizer":
        return cls(
            tz=zone_from_name(settings.timezone),
            boolean_keys=settings.boolean_keys,
            reference_keys=settings.reference_keys,
            registry=registry,
        )

    def normalize(self, raw: Any, key: Optional[str] = None, source: Optional[str] = None) -> Value:
        """Normalize one raw value observed under a property key."""
        if isinstance(raw, Value):
            return raw
        if raw is None:
            return Value.null()
        if isinstance(raw, EntityReference):
            if raw.registry is None and self.registry is not None:
                raw.bind(self.registry)
            return Value.of_reference(raw)

        # Foreign-key-like keys hold ids of other entities
        if key in self.reference_keys and not isinstance(raw, bool) and isinstance(raw, (int, str)):
            return self._reference(key, raw)

        if isinstance(raw, bool):
            return Value.of_bool(raw)
        if key in self.boolean_keys and isinstance(raw, int) and raw in (0, 1):
            return Value.of_bool(raw == 1)
        if isinstance(raw, int):
            return Value.of_int(raw)
        if isinstance(raw, float):
            return Value.of_float(raw)
        if isinstance(raw, datetime):
            return Value.of_datetime(self._anchor(raw))
        if isinstance(raw, str):
            return self._normalize_string(raw, key)
        if isinstance(raw, Mapping):
            return self._normalize_mapping(raw)
        if isinstance(raw, (list, tuple, set, frozenset)):
            return Value.of_list(self.normalize(item) for item in raw)

        logger.debug("No normalization rule for %s under key %r; storing as string", type(raw).__name__, key)
        return Value.of_str(str(raw))

    def equals(self, a: Optional[Value], b: Optional[Value]) -> bool:
        return equals(a, b)

    def _normalize_string(self, raw: str, key: Optional[str]) -> Value:
        text = raw.strip()

        if key in self.boolean_keys and text.lower() in BOOLEAN_STRINGS:
            return Value.of_bool(BOOLEAN_STRINGS[text.lower()])

        if INTEGER_PATTERN.match(text):
            return Value.of_int(int(text))

        if SITE_DATETIME_PATTERN.match(text) or ISO_DATETIME_PATTERN.match(text):
            try:
                return Value.of_datetime(self._parse_datetime(text))
            except NormalizationAmbiguity as e:
                logger.debug("Keeping %r as a string: %s", raw, e)
                return Value.of_str(raw)

        if text[:1] in ("[", "{"):
            try:
                decoded = json.loads(text)
            except ValueError:
                return Value.of_str(raw)
            if isinstance(decoded, (list, dict)):
                return self.normalize(decoded)

        return Value.of_str(raw)

    def _normalize_mapping(self, raw: Mapping) -> Value:
        keys = list(raw.keys())

        # Sequentially keyed mappings are plain lists
        if all(isinstance(k, int) or (isinstance(k, str) and INTEGER_PATTERN.match(k)) for k in keys) \
                and [int(k) for k in keys] == list(range(len(keys))):
            return Value.of_list(self.normalize(item) for item in raw.values())

        # Otherwise an association list of [key, value] pairs
        return Value.of_list(
            Value.of_list([Value.of_str(str(k)), self.normalize(v)]) for k, v in raw.items()
        )

    def _parse_datetime(self, text: str) -> datetime:
        try:
            if SITE_DATETIME_PATTERN.match(text):
                parsed = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise NormalizationAmbiguity(f"'{text}' looks like a datetime but is not valid") from e
        return self._anchor(parsed)

    def _anchor(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value

    def _reference(self, key: str, raw) -> Value:
        entity_key = raw
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return Value.null()
            entity_key = int(text) if INTEGER_PATTERN.match(text) else text

        # Id 0 means "no entity"
        if entity_key == 0:
            return Value.null()

        return Value.of_reference(
            EntityReference(self.reference_keys[key], entity_key, registry=self.registry)
        )
