"""Pytest configuration and shared fixtures."""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from changetrail.database import Base, get_db
from changetrail.models import records  # noqa: F401
from changetrail.models.enums import EntityKind
from changetrail.models.event import ActorInfo
from changetrail.models.properties import Property
from changetrail.models.values import Value
from changetrail.services.aggregator import EventAggregator
from changetrail.services.normalizer import PropertyKeyPolicy, ValueNormalizer
from changetrail.services.repository import EventRepository
from changetrail.services.resolvers import EntityResolver, ResolverRegistry

T0 = datetime(2024, 5, 1, 9, 30, 0, tzinfo=timezone.utc)


class InMemoryResolver(EntityResolver):
    """Resolver over a plain dict of key -> name, standing in for the host's data access."""

    def __init__(self, kind, names=None, source=None):
        self.kind = kind
        self.names = dict(names or {})
        self.source = source
        self.load_calls = 0

    def exists(self, key):
        return key in self.names

    def load(self, key):
        self.load_calls += 1
        if key not in self.names:
            return None
        return {"id": key, "name": self.names[key]}

    def get_name(self, key):
        return self.names.get(key)

    def get_core_properties(self, key):
        if key not in self.names:
            return []
        return [
            Property("ID", self.source, Value.of_int(key) if isinstance(key, int) else Value.of_str(key)),
            Property(f"{self.kind}_title", self.source, Value.of_str(self.names[key])),
        ]


@pytest.fixture
def engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a fresh in-memory database for each test."""
    TestingSessionLocal = sessionmaker(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def post_resolver():
    return InMemoryResolver("post", {5: "Hello world", 7: "About us"}, source="wp_posts")


@pytest.fixture
def user_resolver():
    return InMemoryResolver("user", {1: "admin", 2: "jane"}, source="wp_users")


@pytest.fixture
def term_resolver():
    return InMemoryResolver("term", {10: "News", 11: "Events", 12: "Releases"}, source="wp_terms")


@pytest.fixture
def registry(post_resolver, user_resolver, term_resolver):
    return ResolverRegistry({
        EntityKind.POST: post_resolver,
        EntityKind.USER: user_resolver,
        EntityKind.TERM: term_resolver,
    })


@pytest.fixture
def normalizer(registry):
    return ValueNormalizer(
        boolean_keys=["show_admin_bar_front", "comment_status_open"],
        reference_keys={"post_author": "user", "post_parent": "post"},
        registry=registry,
    )


@pytest.fixture
def repository(db_session, registry):
    return EventRepository(db_session, registry=registry)


@pytest.fixture
def aggregator(normalizer, repository):
    """Aggregator tracking administrators and editors, with a fixed clock."""
    return EventAggregator(
        normalizer=normalizer,
        tracked_roles=["administrator", "editor"],
        key_policy=PropertyKeyPolicy(denylist=["post_modified_gmt"]),
        repository=repository,
        clock=lambda: T0,
    )


@pytest.fixture
def admin():
    return ActorInfo(user_id=1, display_name="admin", role="administrator", ip="10.0.0.1")


@pytest.fixture
def subscriber():
    return ActorInfo(user_id=3, display_name="sam", role="subscriber", ip="10.0.0.3")


@pytest.fixture
def client(engine, registry):
    """API client against the in-memory database."""
    from changetrail.main import create_app

    app = create_app(registry)
    TestingSessionLocal = sessionmaker(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan would create tables in the configured database
    return TestClient(app)
