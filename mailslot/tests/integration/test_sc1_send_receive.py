"""SC-1 端到端：发送 -> 历史 -> 实时订阅

Alice 给 Bob 发消息；Bob 的历史和实时订阅看到同一条消息。
"""

import asyncio

from httpx import AsyncClient


class TestSC1SendReceive:
    async def test_send_then_history(self, client: AsyncClient):
        resp = await client.post(
            "/api/messages",
            json={"receiver": "bob", "content": "hi"},
            headers={"X-Caller-Handle": "alice"},
        )
        assert resp.status_code == 201
        sent = resp.json()
        assert sent["id"] == 1

        resp = await client.get("/api/inbox/bob/messages")
        messages = resp.json()["messages"]
        assert len(messages) == 1
        assert messages[0] == sent

    async def test_live_subscriber_sees_sent_message(
        self, client: AsyncClient, integration_app
    ):
        service = integration_app.state.messaging_service
        feed = await service.subscribe("bob")

        async def _first():
            async for message in feed:
                return message

        reader = asyncio.create_task(_first())
        await asyncio.sleep(0.01)

        resp = await client.post(
            "/api/messages",
            json={"receiver": "bob", "content": "hello live"},
            headers={"X-Caller-Handle": "alice"},
        )
        assert resp.status_code == 201

        received = await asyncio.wait_for(reader, timeout=2.0)
        assert received.id == resp.json()["id"]
        assert received.content == "hello live"
        feed.cancel()

    async def test_sender_sees_own_message_without_echo(self, client: AsyncClient):
        """发送方直接使用 Send 的返回值，发件人自己的收件箱不受影响"""
        resp = await client.post(
            "/api/messages",
            json={"receiver": "bob", "content": "hi"},
            headers={"X-Caller-Handle": "alice"},
        )
        assert resp.json()["sender"] == "alice"

        alice_inbox = (await client.get("/api/inbox/alice/messages")).json()
        assert alice_inbox["messages"] == []
