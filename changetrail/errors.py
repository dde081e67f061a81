"""
Error taxonomy for the change-tracking core.

Only NormalizationAmbiguity is non-fatal: the normalizer raises and catches it
internally and falls back to a string value. Everything else propagates to the
caller.
"""


class ChangeTrailError(Exception):
    """Base class for all errors raised by changetrail."""


class ConfigurationError(ChangeTrailError):
    """The core was wired up incorrectly (missing or invalid resolver, bad settings)."""


class UnknownEntityKind(ConfigurationError):
    """
    Raised when a reference is resolved and no resolver is registered for its kind.

    References are never validated at construction, only at resolution time,
    because the kind check needs the resolver registry.
    """
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No resolver registered for entity kind '{kind}'.")


class MissingPropertyKey(ChangeTrailError, KeyError):
    """A mutation was requested for a property key that was never contributed."""
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Property with key '{key}' not found.")

    def __str__(self) -> str:
        return self.args[0]


class ScopeFinalizedError(ChangeTrailError):
    """A contribution was made to an aggregation scope that has already been finalized."""


class ImmutableEventError(ChangeTrailError):
    """An attempt was made to change an Event after it was persisted."""


class PersistError(ChangeTrailError):
    """
    The storage collaborator failed to save an event.

    Opaque to the core: it is propagated unchanged and never retried.
    """


class NormalizationAmbiguity(ChangeTrailError):
    """
    A raw value looked like a typed value but could not be parsed as one.

    Never surfaced to callers; the normalizer catches it and keeps the string.
    """
