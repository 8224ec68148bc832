"""Shared fixtures: fake transports, an in-memory Redis and a wired-up app."""

import fakeredis
import pytest
from fastapi.testclient import TestClient

import app as app_module
from backend import PairingStore, get_pairing_store
from signaling.hub import SignalingHub
from signaling.push import PushDispatcher, PushOutcome


class FakeTransport:
    """Records what the hub sends; liveness is a plain flag."""

    def __init__(self):
        self.messages = []
        self.is_live = True
        self.closed = False

    def send(self, message: dict):
        self.messages.append(message)

    def close_soon(self):
        self.closed = True
        self.is_live = False

    def of_type(self, message_type: str) -> list:
        return [m for m in self.messages if m.get("type") == message_type]

    def last(self) -> dict:
        return self.messages[-1]

    def clear(self):
        self.messages.clear()


class RecordingNotifier:
    def __init__(self, outcome: PushOutcome = None):
        self.calls = []
        self.outcome = outcome or PushOutcome(success=True)

    def notify(self, token, platform, room_id, message):
        self.calls.append((token, platform, room_id, message))
        return self.outcome


class RecordingDispatcher:
    def __init__(self):
        self.waiting = []

    def room_waiting(self, room_id, device_id):
        self.waiting.append((room_id, device_id))


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def store(redis_client):
    return PairingStore(redis_client)


@pytest.fixture
def push():
    return RecordingDispatcher()


@pytest.fixture
def hub(push):
    return SignalingHub(push=push)


@pytest.fixture
def connect(hub):
    """Register a fake transport with the hub and return (id, transport)."""

    def _connect():
        transport = FakeTransport()
        connection_id = hub.connect(transport)
        return connection_id, transport

    return _connect


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(store, notifier, monkeypatch):
    monkeypatch.setattr(app_module, "hub", SignalingHub(push=PushDispatcher(lambda: store, notifier)))
    app_module.app.dependency_overrides[get_pairing_store] = lambda: store
    try:
        # One portal, so every WebSocket session shares the same event loop
        with TestClient(app_module.app) as test_client:
            yield test_client
    finally:
        app_module.app.dependency_overrides.clear()
