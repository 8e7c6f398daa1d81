"""Integration tests for chat router."""

import fakeredis.aioredis
from httpx import AsyncClient

from app.core.config import settings
from app.schemas.job_schema import ChatJob
from tests.conftest import (
    create_chat,
    create_user,
    make_auth_headers,
    test_session_factory,
)


async def _create_chat(client: AsyncClient) -> int:
    resp = await client.post("/api/v1/chats")
    assert resp.status_code == 201
    return resp.json()["data"]["id"]


class TestChatLifecycle:
    async def test_create_chat(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post("/api/v1/chats")

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == 201
        assert body["message"] == "Chat created"
        assert body["data"]["user_id"] == 1
        assert body["data"]["status"] == "active"

    async def test_get_chat(self, authed_client: AsyncClient) -> None:
        chat_id = await _create_chat(authed_client)

        resp = await authed_client.get(f"/api/v1/chats/{chat_id}")

        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == chat_id

    async def test_other_users_chat_is_not_found(
        self, authed_client: AsyncClient
    ) -> None:
        chat_id = await _create_chat(authed_client)

        resp = await authed_client.get(
            f"/api/v1/chats/{chat_id}", headers=make_auth_headers(user_id=2)
        )

        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": {"code": "CHAT_NOT_FOUND", "message": "Chat not found"},
        }

    async def test_list_chats_with_preview(self, authed_client: AsyncClient) -> None:
        first = await _create_chat(authed_client)
        second = await _create_chat(authed_client)
        await authed_client.post(
            f"/api/v1/chats/{first}/messages", json={"content": "latest words"}
        )

        resp = await authed_client.get("/api/v1/chats", params={"limit": 10})

        assert resp.status_code == 200
        chats = resp.json()["data"]["chats"]
        assert {c["id"] for c in chats} == {first, second}
        by_id = {c["id"]: c for c in chats}
        assert by_id[first]["last_message_preview"] == "latest words"
        assert by_id[second]["last_message_preview"] is None

    async def test_list_rejects_bad_cursor(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.get("/api/v1/chats", params={"cursor": "nope"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_CURSOR"

    async def test_close_then_send_is_conflict(
        self, authed_client: AsyncClient
    ) -> None:
        chat_id = await _create_chat(authed_client)

        closed = await authed_client.post(f"/api/v1/chats/{chat_id}/close")
        resp = await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages", json={"content": "hello?"}
        )

        assert closed.status_code == 200
        assert closed.json()["data"]["status"] == "closed"
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CHAT_CLOSED"

    async def test_delete_removes_chat_and_history(
        self, authed_client: AsyncClient
    ) -> None:
        chat_id = await _create_chat(authed_client)
        await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages", json={"content": "bye"}
        )

        resp = await authed_client.delete(f"/api/v1/chats/{chat_id}")
        history = await authed_client.get(f"/api/v1/chats/{chat_id}/messages")

        assert resp.status_code == 200
        assert resp.json()["data"] is None
        assert history.status_code == 404


class TestSendMessage:
    async def test_send_is_accepted_and_queued(
        self,
        authed_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        chat_id = await _create_chat(authed_client)

        resp = await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages",
            json={"content": "What's the weather in Madrid tomorrow?"},
        )

        assert resp.status_code == 202
        data = resp.json()["data"]
        assert data["status"] == "processing"
        assert data["chat_id"] == chat_id
        assert data["user_message"]["sender_type"] == "user"

        raw = await fake_redis.lindex(settings.queue.pending_key, 0)
        job = ChatJob.model_validate_json(raw)
        assert job.job_id == data["job_id"]
        assert job.correlation_id == data["user_message"]["id"]

        history = await authed_client.get(f"/api/v1/chats/{chat_id}/messages")
        messages = history.json()["data"]["messages"]
        assert [m["sender_type"] for m in messages] == ["user"]

    async def test_blank_message_rejected(self, authed_client: AsyncClient) -> None:
        chat_id = await _create_chat(authed_client)

        resp = await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages", json={"content": "   "}
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_too_long_message_rejected(self, authed_client: AsyncClient) -> None:
        chat_id = await _create_chat(authed_client)

        resp = await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages", json={"content": "x" * 1001}
        )

        assert resp.status_code == 400

    async def test_send_to_foreign_chat(self, authed_client: AsyncClient) -> None:
        async with test_session_factory() as session:
            await create_user(session, user_id=2)
            chat = await create_chat(session, user_id=2)
            await session.commit()

        resp = await authed_client.post(
            f"/api/v1/chats/{chat.id}/messages", json={"content": "hi"}
        )

        assert resp.status_code == 404

    async def test_send_is_rate_limited(self, authed_client: AsyncClient) -> None:
        chat_id = await _create_chat(authed_client)
        allowed = int(settings.chat.send_rate_limit.split("/")[0])

        for _ in range(allowed):
            resp = await authed_client.post(
                f"/api/v1/chats/{chat_id}/messages", json={"content": "spam"}
            )
            assert resp.status_code == 202

        resp = await authed_client.post(
            f"/api/v1/chats/{chat_id}/messages", json={"content": "spam"}
        )
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
