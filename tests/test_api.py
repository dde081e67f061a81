"""Tests for the read API."""
from datetime import datetime, timedelta, timezone

import pytest

from changetrail.models.enums import EventType
from changetrail.models.event import Event
from changetrail.models.properties import Property
from changetrail.models.references import EntityReference
from changetrail.models.values import Value

T = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)
TRACKED = ["administrator"]


@pytest.fixture
def logged(repository, registry, admin):
    login = Event.create(EventType.LOGIN, actor=admin, tracked_roles=TRACKED, occurred_at=T)
    update = Event.create(
        "Post Updated",
        EntityReference("post", 5, registry=registry),
        properties=[
            Property("post_status", "wp_posts", Value.of_str("draft"), Value.of_str("publish")),
            Property("user_pass", "wp_users", Value.of_str("secret")),
        ],
        actor=admin,
        tracked_roles=TRACKED,
        occurred_at=T + timedelta(minutes=1),
    )
    return [repository.save(login), repository.save(update)]


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestListEvents:

    def test_lists_newest_first(self, client, logged):
        response = client.get("/api/events")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [item["event_type"] for item in data["items"]] == ["Post Updated", EventType.LOGIN]
        assert data["items"][0]["subject"] == {
            "kind": "post",
            "key": 5,
            "label": "Hello world",
            "url": None,
            "deleted": False,
        }
        assert data["items"][0]["actor"]["display_name"] == "admin"

    def test_filter_by_type(self, client, logged):
        data = client.get("/api/events", params={"event_type": EventType.LOGIN}).json()

        assert data["total"] == 1
        assert data["items"][0]["subject"] is None

    def test_paging(self, client, logged):
        data = client.get("/api/events", params={"limit": 1, "offset": 1}).json()

        assert data["total"] == 2
        assert data["limit"] == 1
        assert [item["id"] for item in data["items"]] == [logged[0].id]

    def test_invalid_limit(self, client):
        assert client.get("/api/events", params={"limit": 0}).status_code == 422


class TestGetEvent:

    def test_detail_has_property_table(self, client, logged):
        response = client.get(f"/api/events/{logged[1].id}")

        assert response.status_code == 200
        data = response.json()
        assert data["columns"] == 3
        rows = {row["key"]: row for row in data["properties"]}
        assert rows["post_status"]["label"] == "Status"
        assert (rows["post_status"]["before"], rows["post_status"]["after"]) == ("draft", "publish")
        assert rows["user_pass"]["before"] == "(hidden)"

    def test_deleted_subject(self, client, logged, post_resolver):
        del post_resolver.names[5]

        data = client.get(f"/api/events/{logged[1].id}").json()

        assert data["subject"]["deleted"] is True
        assert data["subject"]["label"] == "Hello world"

    def test_not_found(self, client):
        response = client.get("/api/events/999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Event not found"
