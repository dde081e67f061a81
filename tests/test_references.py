"""Tests for entity references and the resolver registry."""
import pytest

from changetrail.errors import ConfigurationError, UnknownEntityKind
from changetrail.models.enums import EntityKind, ResolutionState
from changetrail.models.references import ActiveReference, DeletedReference, EntityReference
from changetrail.services.resolvers import ResolverRegistry


class TestResolution:
    """References resolve lazily, once."""

    def test_existing_entity_is_active(self, registry):
        ref = EntityReference("post", 5, registry=registry)

        tag = ref.display_tag()

        assert tag == ActiveReference(url=None, label="Hello world")
        assert not tag.is_deleted
        assert ref.resolution_state == ResolutionState.RESOLVED

    def test_deleted_entity_uses_remembered_name(self, registry):
        """
        INVARIANT: A deleted entity renders as Deleted with its remembered name.
        """
        ref = EntityReference("post", 99, "Old announcement", registry=registry)

        assert ref.display_tag() == DeletedReference("Old announcement")
        assert ref.resolution_state == ResolutionState.MISSING

    def test_deleted_entity_without_name_uses_kind_and_key(self, registry):
        ref = EntityReference("post", 99, registry=registry)

        assert ref.display_tag() == DeletedReference("Post 99")
        assert ref.display_tag().is_deleted

    def test_resolution_is_memoized(self, registry, post_resolver):
        """
        INVARIANT: A reference asks its resolver at most once.
        """
        ref = EntityReference("post", 5, registry=registry)

        ref.resolve_object()
        ref.resolve_object()
        ref.display_tag()

        assert post_resolver.load_calls == 1

    def test_missing_is_memoized_too(self, registry, post_resolver):
        ref = EntityReference("post", 99, registry=registry)

        assert ref.exists is False
        post_resolver.names[99] = "Came back"
        assert ref.exists is False

    def test_rebinding_discards_memoized_result(self, registry):
        ref = EntityReference("post", 5, registry=registry)
        ref.resolve_object()

        ref.bind(ResolverRegistry({"post": registry.get("post")}))

        assert ref.resolution_state == ResolutionState.UNRESOLVED

    def test_resolve_name_prefers_live_name(self, registry):
        assert EntityReference("post", 5, "Stale", registry=registry).resolve_name() == "Hello world"
        assert EntityReference("post", 99, "Stale", registry=registry).resolve_name() == "Stale"

    def test_new_with_name_true_fetches_name(self, registry):
        ref = EntityReference.new("user", 2, registry=registry)

        assert ref.cached_name == "jane"

    def test_new_with_name_false_leaves_it_unset(self, registry):
        ref = EntityReference.new("user", 2, name=False, registry=registry)

        assert ref.cached_name is None
        assert ref.resolution_state == ResolutionState.UNRESOLVED


class TestKinds:
    """Unknown kinds are caught at resolution, not construction."""

    def test_unknown_kind_fails_only_when_resolved(self, registry):
        """
        INVARIANT: An unknown kind raises UnknownEntityKind at resolution time.
        """
        ref = EntityReference("widget", 1, registry=registry)

        with pytest.raises(UnknownEntityKind) as exc:
            ref.resolve_object()
        assert exc.value.kind == "widget"

    def test_unbound_reference_cannot_resolve(self):
        with pytest.raises(ConfigurationError):
            EntityReference("post", 5).resolve_object()

    def test_empty_key_is_rejected(self):
        with pytest.raises(ValueError):
            EntityReference("post", "")

    def test_enum_and_string_kinds_are_the_same(self):
        assert EntityReference(EntityKind.POST, 5) == EntityReference("post", "5")
        assert hash(EntityReference(EntityKind.POST, 5)) == hash(EntityReference("post", "5"))


class TestRegistry:

    def test_register_rejects_non_resolvers(self):
        with pytest.raises(ConfigurationError):
            ResolverRegistry().register("post", object())

    def test_missing_kinds(self, registry):
        missing = registry.missing_kinds()

        assert "post" not in missing
        assert "comment" in missing
        assert "plugin" in missing

    def test_new_reference_is_bound(self, registry):
        ref = registry.new_reference(EntityKind.TERM, 10)

        assert ref.registry is registry
        assert ref.cached_name == "News"
