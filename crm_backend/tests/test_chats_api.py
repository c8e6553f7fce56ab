"""
HTTP tests for the chat API.

Runs the full application (stores, exception handlers, limiter) through
FastAPI's TestClient against per-test data and upload directories.
"""

import pytest


@pytest.mark.integration
class TestChannelAdministration:

    def test_create_adds_creator_to_members(self, client, admin_headers):
        response = client.post(
            "/chats",
            json={"name": "design-team", "members": ["u2", "u3"]},
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        channel = body["data"]
        assert channel["type"] == "broadcast"
        assert channel["locked"] is False
        assert channel["lastMessage"] == ""
        assert channel["unread"] == 0
        assert set(channel["members"]) == {"u1", "u2", "u3"}

    def test_numeric_member_ids(self, client, auth_headers):
        response = client.post(
            "/chats",
            json={"name": "design-team", "members": [2, 3]},
            headers=auth_headers(1, role="admin"),
        )

        assert response.status_code == 201
        assert set(response.json()["data"]["members"]) == {"1", "2", "3"}

    def test_create_requires_admin(self, client, auth_headers):
        response = client.post("/chats", json={"name": "x"}, headers=auth_headers("u2"))

        assert response.status_code == 403
        assert response.json()["error_code"] == "AUTHZ_002"
        assert response.json()["message"] == "Admin only"

    def test_create_requires_token(self, client):
        response = client.post("/chats", json={"name": "x"})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error_code"] == "AUTH_001"

    def test_invalid_token(self, client):
        response = client.get("/chats", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_expired_token(self, client, make_token):
        token = make_token("u2", exp=1)
        response = client.get("/chats", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_002"

    def test_duplicate_name_returns_existing_channel(self, client, admin_headers, create_channel):
        existing = create_channel("Sales")

        response = client.post("/chats", json={"name": "sales"}, headers=admin_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "CONFLICT_002"
        assert body["message"] == "Channel with this name already exists."
        assert body["data"]["id"] == existing["id"]

    @pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "   "}])
    def test_create_requires_name(self, client, admin_headers, payload):
        response = client.post("/chats", json=payload, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Channel name is required."

    def test_lock_and_unlock(self, client, admin_headers, create_channel):
        channel = create_channel()

        locked = client.post(f"/chats/{channel['id']}/lock", json={"locked": True}, headers=admin_headers)
        assert locked.status_code == 200
        assert locked.json()["data"]["locked"] is True

        unlocked = client.post(f"/chats/{channel['id']}/lock", json={"locked": False}, headers=admin_headers)
        assert unlocked.json()["data"]["locked"] is False

    def test_lock_direct_channel_rejected(self, client, admin_headers, auth_headers):
        dm = client.post("/chats/dm", json={"userId": "u2"}, headers=auth_headers("u3")).json()

        response = client.post(f"/chats/{dm['id']}/lock", json={"locked": True}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot lock/unlock DMs"

    def test_lock_unknown_channel(self, client, admin_headers):
        response = client.post("/chats/nope/lock", json={"locked": True}, headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Channel not found"

    def test_rename(self, client, admin_headers, create_channel):
        channel = create_channel("old-name")

        response = client.put(f"/chats/{channel['id']}/rename", json={"name": "new-name"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "new-name"

    def test_rename_to_taken_name(self, client, admin_headers, create_channel):
        create_channel("alpha")
        beta = create_channel("beta")

        response = client.put(f"/chats/{beta['id']}/rename", json={"name": "Alpha"}, headers=admin_headers)

        assert response.status_code == 409

    def test_rename_requires_admin(self, client, auth_headers, create_channel):
        channel = create_channel()

        response = client.put(f"/chats/{channel['id']}/rename", json={"name": "mine"}, headers=auth_headers("u2"))

        assert response.status_code == 403


@pytest.mark.integration
class TestVisibility:

    def test_list_shows_memberships_and_direct_channels(self, client, auth_headers, create_channel):
        mine = create_channel("mine", members=["u2"])
        create_channel("other", members=["u3"])
        dm = client.post("/chats/dm", json={"userId": "u4"}, headers=auth_headers("u3")).json()

        response = client.get("/chats", headers=auth_headers("u2"))

        assert response.status_code == 200
        ids = {c["id"] for c in response.json()["data"]}
        assert ids == {mine["id"], dm["id"]}

    def test_get_single_channel(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        assert client.get(f"/chats/{channel['id']}", headers=auth_headers("u2")).status_code == 200

        denied = client.get(f"/chats/{channel['id']}", headers=auth_headers("u9"))
        assert denied.status_code == 403
        assert denied.json()["error_code"] == "AUTHZ_003"

    def test_admin_reads_any_broadcast_channel(self, client, admin_headers, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        other_admin = auth_headers("a2", role="admin")

        response = client.get(f"/chats/{channel['id']}/messages", headers=other_admin)

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_admin_cannot_read_foreign_direct_channel(self, client, admin_headers, auth_headers):
        dm = client.post("/chats/dm", json={"userId": "u3"}, headers=auth_headers("u2")).json()

        response = client.get(f"/chats/{dm['id']}/messages", headers=admin_headers)

        assert response.status_code == 403


@pytest.mark.integration
class TestMessages:

    def test_post_and_read_in_order(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        headers = auth_headers("u2", name="Bea")

        for text in ["one", "two", "three"]:
            response = client.post(f"/chats/{channel['id']}/messages", data={"content": text}, headers=headers)
            assert response.status_code == 201

        history = client.get(f"/chats/{channel['id']}/messages", headers=headers).json()["data"]
        assert [m["id"] for m in history] == [1, 2, 3]
        assert [m["message"] for m in history] == ["one", "two", "three"]
        assert history[0]["sender"] == "Bea"
        assert history[0]["senderId"] == "u2"
        assert history[0]["chatId"] == channel["id"]
        assert history[0]["attachments"] == []

        refreshed = client.get(f"/chats/{channel['id']}", headers=headers).json()["data"]
        assert refreshed["lastMessage"] == "three"
        assert refreshed["unread"] == 3

    def test_empty_message_rejected(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(f"/chats/{channel['id']}/messages", data={"content": ""}, headers=auth_headers("u2"))

        assert response.status_code == 400
        assert response.json()["message"] == "Message content or attachment required."

    def test_whitespace_message_accepted(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(f"/chats/{channel['id']}/messages", data={"content": "   "}, headers=auth_headers("u2"))

        assert response.status_code == 201
        assert response.json()["data"]["message"] == "   "

    def test_non_member_cannot_post_or_read(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        outsider = auth_headers("u9")

        posted = client.post(f"/chats/{channel['id']}/messages", data={"content": "hi"}, headers=outsider)
        read = client.get(f"/chats/{channel['id']}/messages", headers=outsider)

        assert posted.status_code == 403
        assert read.status_code == 403

    def test_unknown_channel(self, client, auth_headers):
        response = client.get("/chats/missing/messages", headers=auth_headers("u2"))

        assert response.status_code == 404
        assert response.json()["error_code"] == "NF_002"

    def test_locked_channel_admin_only(self, client, admin_headers, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        client.post(f"/chats/{channel['id']}/lock", json={"locked": True}, headers=admin_headers)

        member = client.post(f"/chats/{channel['id']}/messages", data={"content": "hi"}, headers=auth_headers("u2"))
        assert member.status_code == 403
        assert member.json()["error_code"] == "AUTHZ_004"
        assert member.json()["message"] == "Channel is locked"

        admin = client.post(f"/chats/{channel['id']}/messages", data={"content": "notice"}, headers=admin_headers)
        assert admin.status_code == 201

        history = client.get(f"/chats/{channel['id']}/messages", headers=auth_headers("u2")).json()["data"]
        assert [m["message"] for m in history] == ["notice"]

    def test_attachment_only_message(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            files=[("attachments", ("quarterly report.pdf", b"%PDF-1.4 data", "application/pdf"))],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 201
        message = response.json()["data"]
        assert message["message"] == ""
        assert len(message["attachments"]) == 1
        attachment = message["attachments"][0]
        assert attachment["filename"] == "quarterly report.pdf"
        assert attachment["url"].startswith("/uploads/")
        assert attachment["url"].endswith(".pdf")

        blob = client.get(attachment["url"])
        assert blob.status_code == 200
        assert blob.content == b"%PDF-1.4 data"

        refreshed = client.get(f"/chats/{channel['id']}", headers=auth_headers("u2")).json()["data"]
        assert refreshed["lastMessage"] == "quarterly report.pdf"

    def test_text_with_several_attachments(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            data={"content": "see files"},
            files=[
                ("attachments", ("a.txt", b"first", "text/plain")),
                ("attachments", ("b.png", b"\x89PNG", "image/png")),
            ],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 201
        assert [a["filename"] for a in response.json()["data"]["attachments"]] == ["a.txt", "b.png"]

    def test_attachment_keeps_uploaded_name(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            files=[("attachments", ("my report (v2).pdf", b"%PDF-1.4", "application/pdf"))],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 201
        attachment = response.json()["data"]["attachments"][0]
        assert attachment["filename"] == "my report (v2).pdf"
        assert attachment["url"].endswith(".pdf")
        assert " " not in attachment["url"]

        refreshed = client.get(f"/chats/{channel['id']}", headers=auth_headers("u2")).json()["data"]
        assert refreshed["lastMessage"] == "my report (v2).pdf"

    def test_attachment_name_drops_client_directories(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            files=[("attachments", ("reports/2024/notes.txt", b"hello", "text/plain"))],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 201
        assert response.json()["data"]["attachments"][0]["filename"] == "notes.txt"

    def test_empty_attachment_accepted(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            files=[("attachments", ("empty.txt", b"", "text/plain"))],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 201
        attachment = response.json()["data"]["attachments"][0]
        assert attachment["filename"] == "empty.txt"
        assert client.get(attachment["url"]).content == b""

    def test_blocked_attachment_rejects_whole_message(self, client, auth_headers, create_channel, tmp_path):
        channel = create_channel(members=["u2"])

        response = client.post(
            f"/chats/{channel['id']}/messages",
            data={"content": "installer"},
            files=[
                ("attachments", ("notes.txt", b"fine", "text/plain")),
                ("attachments", ("setup.exe", b"MZ", "application/octet-stream")),
            ],
            headers=auth_headers("u2"),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VAL_004"
        assert client.get(f"/chats/{channel['id']}/messages", headers=auth_headers("u2")).json()["data"] == []
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_unknown_upload(self, client):
        assert client.get("/uploads/does-not-exist.txt").status_code == 404


@pytest.mark.integration
class TestDirectChannels:

    def test_open_is_idempotent(self, client, auth_headers):
        first = client.post("/chats/dm", json={"userId": "bob"}, headers=auth_headers("alice"))
        second = client.post("/chats/dm", json={"userId": "alice"}, headers=auth_headers("bob"))

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert first.json()["id"] == second.json()["id"]

        channel = first.json()["data"]
        assert channel["type"] == "direct"
        assert channel["locked"] is False
        assert set(channel["members"]) == {"alice", "bob"}

    def test_numeric_user_id(self, client, auth_headers):
        response = client.post("/chats/dm", json={"userId": 2}, headers=auth_headers(1))

        assert response.status_code == 200
        assert set(response.json()["data"]["members"]) == {"1", "2"}

    def test_dm_with_self_rejected(self, client, auth_headers):
        response = client.post("/chats/dm", json={"userId": "alice"}, headers=auth_headers("alice"))

        assert response.status_code == 400

    def test_dm_requires_user_id(self, client, auth_headers):
        response = client.post("/chats/dm", json={}, headers=auth_headers("alice"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "VAL_002"

    def test_participants_can_post(self, client, auth_headers):
        dm = client.post("/chats/dm", json={"userId": "bob"}, headers=auth_headers("alice")).json()

        response = client.post(f"/chats/{dm['id']}/messages", data={"content": "hey"}, headers=auth_headers("bob"))
        assert response.status_code == 201

        outsider = client.post(f"/chats/{dm['id']}/messages", data={"content": "hey"}, headers=auth_headers("eve"))
        assert outsider.status_code == 403


@pytest.mark.integration
class TestMembership:

    def test_add_and_remove_member(self, client, admin_headers, create_channel):
        channel = create_channel(members=["u2"])

        added = client.put(f"/chats/{channel['id']}/members", json={"add": "u7"}, headers=admin_headers)
        assert added.status_code == 200
        assert "u7" in added.json()["data"]["members"]

        removed = client.put(f"/chats/{channel['id']}/members", json={"remove": "u2"}, headers=admin_headers)
        assert "u2" not in removed.json()["data"]["members"]

    def test_numeric_member_update(self, client, admin_headers, create_channel):
        channel = create_channel(members=["2"])

        added = client.put(f"/chats/{channel['id']}/members", json={"add": 7}, headers=admin_headers)
        assert "7" in added.json()["data"]["members"]

        removed = client.put(f"/chats/{channel['id']}/members", json={"remove": 2}, headers=admin_headers)
        assert removed.status_code == 200
        assert "2" not in removed.json()["data"]["members"]

    def test_remove_then_denied(self, client, admin_headers, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        client.put(f"/chats/{channel['id']}/members", json={"remove": "u2"}, headers=admin_headers)

        response = client.get(f"/chats/{channel['id']}/messages", headers=auth_headers("u2"))
        assert response.status_code == 403

    def test_direct_channel_members_fixed(self, client, admin_headers, auth_headers):
        dm = client.post("/chats/dm", json={"userId": "bob"}, headers=auth_headers("alice")).json()

        response = client.put(f"/chats/{dm['id']}/members", json={"add": "eve"}, headers=admin_headers)

        assert response.status_code == 400

    def test_members_requires_admin(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])

        response = client.put(f"/chats/{channel['id']}/members", json={"add": "u2"}, headers=auth_headers("u2"))

        assert response.status_code == 403

    def test_leave(self, client, auth_headers, create_channel):
        channel = create_channel(members=["u2"])
        headers = auth_headers("u2")

        left = client.put(f"/chats/{channel['id']}/leave", headers=headers)
        assert left.status_code == 200
        assert "u2" not in left.json()["data"]["members"]

        again = client.put(f"/chats/{channel['id']}/leave", headers=headers)
        assert again.status_code == 403
        assert again.json()["message"] == "Not a channel member"

    def test_leave_unknown_channel(self, client, auth_headers):
        assert client.put("/chats/missing/leave", headers=auth_headers("u2")).status_code == 404


@pytest.mark.integration
class TestPersistence:

    def test_state_survives_restart(self, admin_headers, auth_headers):
        from fastapi.testclient import TestClient
        from crm_backend.api.chats import limiter
        from crm_backend.server import app

        limiter.reset()
        with TestClient(app) as first:
            channel = first.post("/chats", json={"name": "durable", "members": ["u2"]}, headers=admin_headers).json()["data"]
            first.post(f"/chats/{channel['id']}/messages", data={"content": "kept"}, headers=auth_headers("u2"))

        with TestClient(app) as second:
            history = second.get(f"/chats/{channel['id']}/messages", headers=auth_headers("u2")).json()["data"]
            listed = second.get("/chats", headers=auth_headers("u2")).json()["data"]

        assert [m["message"] for m in history] == ["kept"]
        assert [c["name"] for c in listed] == ["durable"]


@pytest.mark.integration
class TestSystemEndpoints:

    def test_status(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "CRM chat backend is running"

    def test_status_head(self, client):
        assert client.head("/").status_code == 204

    def test_presence_empty(self, client, auth_headers):
        response = client.get("/presence", headers=auth_headers("u2"))

        assert response.status_code == 200
        assert response.json()["data"] == {"onlineUsers": []}

    def test_ws_metrics_admin_only(self, client, admin_headers, auth_headers):
        assert client.get("/system/ws-metrics", headers=auth_headers("u2")).status_code == 403

        response = client.get("/system/ws-metrics", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["current_connections"] == 0
