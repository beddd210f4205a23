"""Tests for the websocket transport: discovery, login, framing and closure."""
import asyncio
import json

import httpx
import pytest

from agentbot.config.schema import AgentCredentials
from agentbot.transport.base import CLOSED, CONNECTED, ERROR, NOTIFICATION, TransportError
from agentbot.transport.websocket import WebSocketTransport

from conftest import wait_for_condition

BASE_URIS = {
    "baseURIs": [
        {"service": "asyncMessagingEnt", "account": "123", "baseURI": "va.msg.example.com"},
        {"service": "agentVep", "account": "123", "baseURI": "va.agentvep.example.com"},
    ]
}


class FakeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self.close_code = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(json.loads(data))

    def push(self, frame):
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def end(self, code=1006):
        self.close_code = code
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def close(self):
        self.closed = True


def _http(seen: list[httpx.Request], login: dict | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/service/baseURI.json"):
            return httpx.Response(200, json=BASE_URIS)
        if request.url.path.endswith("/login"):
            return httpx.Response(200, json=login or {"bearer": "tok-1", "config": {"userId": "u-1"}})
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def socket():
    return FakeSocket()


@pytest.fixture
def opened(socket):
    urls = []

    async def connect(url):
        urls.append(url)
        return socket

    connect.urls = urls
    return connect


@pytest.fixture
async def connected(socket, opened):
    seen = []
    events = []
    transport = WebSocketTransport(
        AgentCredentials(account_id="123", username="bot", password="pw"),
        connect=opened,
        http=_http(seen),
    )
    transport.add_listener(events.append)
    await transport.connect()
    yield transport, events, seen
    await transport.close()


async def test_connect_discovers_logs_in_and_opens_socket(connected, opened):
    transport, events, seen = connected

    assert [r.url.host for r in seen] == ["adminlogin.liveperson.net", "va.agentvep.example.com"]
    assert seen[0].url.params["version"] == "1.0"
    assert json.loads(seen[1].content) == {"username": "bot", "password": "pw"}
    assert opened.urls == ["wss://va.msg.example.com/ws_api/account/123/messaging/brand/tok-1?v=2"]
    assert transport.agent_id == "123.u-1"
    assert [(e.kind, e.payload) for e in events] == [(CONNECTED, {"connected": True, "agentId": "123.u-1"})]


async def test_token_authentication_skips_login(socket, opened):
    seen = []
    transport = WebSocketTransport(
        AgentCredentials(account_id="123", token="bearer-x", user_id="u-9", csds_domain="csds.example.com", api_version=3),
        connect=opened,
        http=_http(seen),
    )
    await transport.connect()

    assert [r.url.host for r in seen] == ["csds.example.com"]
    assert opened.urls == ["wss://va.msg.example.com/ws_api/account/123/messaging/brand/bearer-x?v=3"]
    assert transport.agent_id == "123.u-9"
    await transport.close()


@pytest.mark.parametrize("credentials", [
    AgentCredentials(username="bot", password="pw"),
    AgentCredentials(account_id="123", token="bearer-x"),
    AgentCredentials(account_id="123", username="bot", app_key="k", secret="s", access_token="t", access_token_secret="ts"),
])
async def test_unusable_credentials_raise(credentials, opened):
    transport = WebSocketTransport(credentials, connect=opened, http=_http([]))
    with pytest.raises(TransportError):
        await transport.connect()
    assert opened.urls == []
    await transport.close()


async def test_request_is_correlated_with_response(connected, socket):
    transport, _, _ = connected
    task = asyncio.create_task(transport.get_clock())
    await wait_for_condition(lambda: socket.sent)

    frame = socket.sent[0]
    assert frame["kind"] == "req"
    assert frame["type"] == "GetClock"
    assert frame["body"] == {}
    socket.push({"kind": "resp", "reqId": frame["id"], "code": 200, "body": {"currentTime": 1700000000000}})

    assert await task == {"currentTime": 1700000000000}


async def test_request_frame_carries_metadata(connected, socket):
    transport, _, _ = connected
    task = asyncio.create_task(transport.publish_event({"dialogId": "C1"}, metadata=[{"type": "ExternalId", "id": "7"}]))
    await wait_for_condition(lambda: socket.sent)

    frame = socket.sent[0]
    assert frame["type"] == "ms.PublishEvent"
    assert frame["metadata"] == [{"type": "ExternalId", "id": "7"}]
    assert "headers" not in frame
    socket.push({"kind": "resp", "reqId": frame["id"], "code": 200, "body": {"sequence": 1}})
    assert await task == {"sequence": 1}


async def test_error_response_raises_with_code(connected, socket):
    transport, _, _ = connected
    task = asyncio.create_task(transport.update_ring_state({"ringId": "r1", "ringState": "ACCEPTED"}))
    await wait_for_condition(lambda: socket.sent)
    socket.push({"kind": "resp", "reqId": socket.sent[0]["id"], "code": 403, "body": {"msg": "denied"}})

    with pytest.raises(TransportError) as exc_info:
        await task
    assert exc_info.value.code == 403
    assert exc_info.value.body == {"msg": "denied"}


async def test_request_times_out(socket, opened):
    transport = WebSocketTransport(
        AgentCredentials(account_id="123", token="t", user_id="u", request_timeout=20),
        connect=opened,
        http=_http([]),
    )
    await transport.connect()
    with pytest.raises(TransportError, match="timed out"):
        await transport.get_clock()
    await transport.close()


async def test_notifications_and_invalid_frames_are_delivered(connected, socket):
    transport, events, _ = connected
    socket.push({"kind": "notification", "type": "ms.MessagingEventNotification", "body": {"dialogId": "C1"}})
    socket.push("{not json")
    await wait_for_condition(lambda: len(events) == 3)

    assert events[1].kind == NOTIFICATION
    assert events[1].payload == {"type": "ms.MessagingEventNotification", "body": {"dialogId": "C1"}}
    assert events[2].kind == ERROR


async def test_unexpected_end_emits_closed_and_fails_pending(connected, socket):
    transport, events, _ = connected
    task = asyncio.create_task(transport.subscribe_routing_tasks({}))
    await wait_for_condition(lambda: socket.sent)

    socket.end(code=1006)
    with pytest.raises(TransportError):
        await task
    await wait_for_condition(lambda: any(e.kind == CLOSED for e in events))
    closed = [e for e in events if e.kind == CLOSED]
    assert closed[0].payload["code"] == 1006
    assert not transport.is_connected


async def test_close_does_not_emit_closed(connected, socket):
    transport, events, _ = connected
    await transport.close()
    await asyncio.sleep(0)
    assert socket.closed
    assert [e.kind for e in events] == [CONNECTED]


async def test_request_without_socket_raises():
    transport = WebSocketTransport(AgentCredentials(account_id="123"), http=_http([]))
    with pytest.raises(TransportError):
        await transport.get_clock()
    await transport.close()


async def test_reconnect_logs_in_again(connected, opened, socket):
    transport, events, seen = connected
    await transport.reconnect()

    assert [r.url.path.endswith("/login") for r in seen].count(True) == 2
    assert len(opened.urls) == 2
    assert [e.kind for e in events] == [CONNECTED, CONNECTED]
