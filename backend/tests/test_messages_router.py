"""Tests for the /messages HTTP endpoints."""
import pytest

from messaging.store.service import MessageStore


@pytest.fixture
def seeded(api_client):
    """Five alice<->bob messages plus one alice->carol message."""
    store = MessageStore.get_instance()
    messages = []
    for i in range(5):
        sender, recipient = ("alice", "bob") if i % 2 == 0 else ("bob", "alice")
        messages.append(store.create(sender, recipient, "alice_bob", f"m{i}"))
    store.create("alice", "carol", "alice_carol", "hey carol")
    return messages


class TestHistory:

    def test_first_page(self, api_client, seeded):
        response = api_client.post(
            "/messages/history?page=1&limit=2", json={"user1": "bob", "user2": "alice"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Messages fetched successfully"
        assert [m["text"] for m in body["data"]] == ["m4", "m3"]
        assert body["pagination"] == {
            "total": 5,
            "page": 1,
            "pages": 3,
            "limit": 2,
            "hasNextPage": True,
            "hasPrevPage": False,
        }

    def test_last_page(self, api_client, seeded):
        body = api_client.post(
            "/messages/history?page=3&limit=2", json={"user1": "alice", "user2": "bob"}
        ).json()

        assert [m["text"] for m in body["data"]] == ["m0"]
        assert body["pagination"]["hasNextPage"] is False
        assert body["pagination"]["hasPrevPage"] is True

    def test_invalid_paging_uses_defaults(self, api_client, seeded):
        body = api_client.post(
            "/messages/history?page=zero&limit=-1", json={"user1": "alice", "user2": "bob"}
        ).json()

        assert body["pagination"]["page"] == 1
        assert body["pagination"]["limit"] == 20
        assert len(body["data"]) == 5

    def test_empty_conversation(self, api_client):
        body = api_client.post(
            "/messages/history", json={"user1": "alice", "user2": "nobody"}
        ).json()

        assert body["data"] == []
        assert body["pagination"]["total"] == 0
        assert body["pagination"]["pages"] == 0

    def test_missing_participant(self, api_client):
        response = api_client.post("/messages/history", json={"user1": "alice"})
        assert response.status_code == 422

    def test_deleted_messages_hidden(self, api_client, seeded):
        api_client.delete(f"/messages/{seeded[4].id}", params={"userIdentity": "alice"})

        body = api_client.post(
            "/messages/history", json={"user1": "alice", "user2": "bob"}
        ).json()

        assert body["pagination"]["total"] == 4
        assert seeded[4].id not in [m["id"] for m in body["data"]]


def test_recent_conversations(api_client, seeded):
    response = api_client.get("/messages/conversations/alice")

    assert response.status_code == 200
    partners = [c["userId"] for c in response.json()["conversations"]]
    assert partners == ["carol", "bob"]


class TestReadAndDelete:

    def test_recipient_marks_read(self, api_client, seeded):
        message = seeded[0]  # alice -> bob

        response = api_client.post(
            f"/messages/{message.id}/read", json={"userIdentity": "bob"}
        )

        assert response.status_code == 200
        assert response.json()["readAt"] is not None

    def test_non_recipient_gets_404(self, api_client, seeded):
        response = api_client.post(
            f"/messages/{seeded[0].id}/read", json={"userIdentity": "alice"}
        )
        assert response.status_code == 404

    def test_sender_deletes(self, api_client, seeded):
        response = api_client.delete(
            f"/messages/{seeded[0].id}", params={"userIdentity": "alice"}
        )

        assert response.status_code == 200
        assert response.json()["deleted"] is True

    def test_non_sender_cannot_delete(self, api_client, seeded):
        response = api_client.delete(
            f"/messages/{seeded[0].id}", params={"userIdentity": "bob"}
        )
        assert response.status_code == 404

    def test_unknown_message(self, api_client):
        response = api_client.delete("/messages/missing", params={"userIdentity": "alice"})
        assert response.status_code == 404
