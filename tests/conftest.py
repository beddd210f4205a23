"""Shared fixtures: an in-memory transport and a running session."""
import asyncio
from typing import Any, Callable

import pytest

from agentbot.config.schema import BotSettings
from agentbot.session.manager import SessionManager
from agentbot.transport.base import CLOSED, CONNECTED, ERROR, NOTIFICATION, Transport, TransportError

AGENT_ID = "12345678.bot"


class FakeTransport(Transport):
    """Records every request and lets tests push raw events into the session."""

    name = "fake"

    def __init__(self, agent_id: str = AGENT_ID):
        super().__init__()
        self.assigned_agent_id = agent_id
        self.calls: list[tuple[str, Any, Any]] = []
        self.responses: dict[str, Any] = {}
        self.failing: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.connect_error: Exception | None = None
        self.reconnect_error: Exception | None = None
        self.on_reconnect: Callable[[], None] | None = None
        self.connects = 0
        self.reconnects = 0
        self.closed = False

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connects += 1
        self._agent_id = self.assigned_agent_id
        self._emit(CONNECTED, {"connected": True, "agentId": self._agent_id})

    async def reconnect(self) -> None:
        self.reconnects += 1
        if self.on_reconnect is not None:
            self.on_reconnect()
        if self.reconnect_error is not None:
            raise self.reconnect_error
        self._agent_id = self.assigned_agent_id
        self._emit(CONNECTED, {"connected": True, "agentId": self._agent_id})

    async def close(self) -> None:
        self.closed = True

    async def request(self, type_, body, headers=None, metadata=None):
        self.calls.append((type_, body, metadata))
        gate = self.gates.get(type_)
        if gate is not None:
            await gate.wait()
        if type_ in self.failing:
            raise TransportError(f"{type_} failed", code=500)
        return self.responses.get(type_, {})

    # ---- test helpers ----

    def notify(self, type_: str, body: dict[str, Any]) -> None:
        self._emit(NOTIFICATION, {"type": type_, "body": body})

    def drop(self, reason: str = "connection lost") -> None:
        self._emit(CLOSED, {"reason": reason, "code": 1006})

    def fail(self, payload: Any) -> None:
        self._emit(ERROR, payload)

    def connected_again(self) -> None:
        self._agent_id = self.assigned_agent_id
        self._emit(CONNECTED, {"connected": True, "agentId": self._agent_id})

    def requests(self, type_: str) -> list[Any]:
        return [body for kind, body, _ in self.calls if kind == type_]


async def settle(session: SessionManager) -> None:
    """Let the session process everything queued so far."""
    await asyncio.sleep(0)
    await session.wait_idle()


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def upsert(conversation_id: str, participants: list[dict[str, Any]], last: dict[str, Any] | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {
        "convId": conversation_id,
        "conversationDetails": {"participants": participants},
    }
    if last is not None:
        result["lastContentEventNotification"] = last
    return {"type": "UPSERT", "result": result}


def delete(conversation_id: str) -> dict[str, Any]:
    return {"type": "DELETE", "result": {"convId": conversation_id}}


def content(dialog_id: str, sequence: int, message: str, originator: str = "consumer-1", role: str = "CONSUMER") -> dict[str, Any]:
    return {
        "sequence": sequence,
        "originatorId": originator,
        "originatorMetadata": {"id": originator, "role": role},
        "dialogId": dialog_id,
        "event": {"type": "ContentEvent", "message": message, "contentType": "text/plain"},
    }


def receipt(dialog_id: str, sequences: list[int], originator: str = AGENT_ID) -> dict[str, Any]:
    return {
        "sequence": max(sequences) + 100,
        "originatorId": originator,
        "dialogId": dialog_id,
        "event": {"type": "AcceptStatusEvent", "status": "READ", "sequenceList": sequences},
    }


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> BotSettings:
    return BotSettings(clock_ping_interval=3600, reconnect_interval=10, reconnect_ratio=1.2, reconnect_attempts=35)


@pytest.fixture
async def session(make_session, settings):
    return await make_session(settings=settings)


def collect(session: SessionManager, kind) -> list:
    """Subscribe a recorder for one event kind and return the list it fills."""
    received: list = []

    async def _record(event):
        received.append(event)

    session.events.subscribe(kind, _record)
    return received


@pytest.fixture
async def make_session(transport):
    """Factory for sessions started in the background; all are stopped at teardown."""
    running: list[tuple[SessionManager, asyncio.Task]] = []

    async def factory(**kwargs) -> SessionManager:
        kwargs.setdefault("settings", BotSettings(clock_ping_interval=3600, reconnect_interval=10))
        s = SessionManager(transport, **kwargs)
        running.append((s, asyncio.create_task(s.start())))
        await settle(s)
        return s

    yield factory

    for s, task in running:
        await s.stop()
        await task
