"""Tests for connect / register / disconnect handling."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeWebSocket
from messaging.auth.service import TokenService
from messaging.chat.hub import ConnectionHub
from messaging.chat.lifecycle import ConnectionLifecycleManager, ConnectionState
from messaging.chat.registrar import ConnectionRegistrar
from messaging.registry import InMemoryRegistry, RegistryError, socket_key, user_sockets_key


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def registrar(registry, hub):
    return ConnectionRegistrar(registry, hub)


@pytest.fixture
def lifecycle(registry, registrar, hub):
    return ConnectionLifecycleManager(registry, registrar, hub)


@pytest.fixture
def tokens():
    return TokenService("test-secret")


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_assigns_id_and_writes_nothing(self, lifecycle, registry, hub):
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        assert ws.accepted is True
        assert ws.sent == [{"type": "connected", "connectionId": conn}]
        assert conn in hub
        assert lifecycle.state(conn) == ConnectionState.CONNECTED
        assert await registry.exists(socket_key(conn)) is False

    @pytest.mark.asyncio
    async def test_connection_ids_are_unique(self, lifecycle):
        first = await lifecycle.connect(FakeWebSocket())
        second = await lifecycle.connect(FakeWebSocket())
        assert first != second


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_binds_user(self, lifecycle, registry):
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        user = await lifecycle.register(conn, {"type": "register", "userIdentity": "alice"})

        assert user == "alice"
        assert lifecycle.state(conn) == ConnectionState.REGISTERED
        assert ws.frames("registered") == [{"type": "registered", "userIdentity": "alice"}]
        assert await registry.get(socket_key(conn)) == "alice"
        assert await registry.set_members(user_sockets_key("alice")) == {conn}

    @pytest.mark.asyncio
    async def test_register_without_identity_emits_error(self, lifecycle, registry):
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        assert await lifecycle.register(conn, {"type": "register"}) is None

        errors = ws.frames("error")
        assert errors == [{
            "type": "error",
            "code": "MESSAGE_FAILED",
            "message": "Failed to register with server",
        }]
        assert lifecycle.state(conn) == ConnectionState.CONNECTED
        assert await registry.exists(socket_key(conn)) is False

    @pytest.mark.asyncio
    async def test_register_with_malformed_identity_emits_error(self, lifecycle):
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        assert await lifecycle.register(conn, {"userIdentity": {"not": "a string"}}) is None
        assert len(ws.frames("error")) == 1

    @pytest.mark.asyncio
    async def test_registry_down_emits_error(self, hub):
        registry = AsyncMock()
        registry.get.side_effect = RegistryError("down")
        lifecycle = ConnectionLifecycleManager(
            registry, ConnectionRegistrar(registry, hub), hub
        )
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        assert await lifecycle.register(conn, {"userIdentity": "alice"}) is None
        assert ws.frames("error")[0]["message"] == "Failed to register with server"


class TestBoundRegistration:

    def test_binding_requires_token_service(self, registry, registrar, hub):
        with pytest.raises(ValueError):
            ConnectionLifecycleManager(registry, registrar, hub, bind_registration=True)

    @pytest.mark.asyncio
    async def test_identity_comes_from_token(self, registry, registrar, hub, tokens):
        lifecycle = ConnectionLifecycleManager(
            registry, registrar, hub, token_service=tokens, bind_registration=True
        )
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        user = await lifecycle.register(
            conn, {"userIdentity": "mallory", "token": tokens.issue_token("alice")}
        )

        assert user == "alice"
        assert await registry.get(socket_key(conn)) == "alice"
        assert await registry.exists(user_sockets_key("mallory")) is False

    @pytest.mark.asyncio
    async def test_missing_token_is_rejected(self, registry, registrar, hub, tokens):
        lifecycle = ConnectionLifecycleManager(
            registry, registrar, hub, token_service=tokens, bind_registration=True
        )
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)

        assert await lifecycle.register(conn, {"userIdentity": "alice"}) is None
        assert len(ws.frames("error")) == 1
        assert await registry.exists(user_sockets_key("alice")) is False


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_last_connection_removes_user_set(self, lifecycle, registry, hub):
        conn = await lifecycle.connect(FakeWebSocket())
        await lifecycle.register(conn, {"userIdentity": "alice"})

        assert await lifecycle.disconnect(conn) == "alice"

        assert await registry.exists(socket_key(conn)) is False
        assert await registry.exists(user_sockets_key("alice")) is False
        assert conn not in hub
        assert lifecycle.state(conn) == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_other_devices_stay_registered(self, lifecycle, registry):
        first = await lifecycle.connect(FakeWebSocket())
        second = await lifecycle.connect(FakeWebSocket())
        await lifecycle.register(first, {"userIdentity": "alice"})
        await lifecycle.register(second, {"userIdentity": "alice"})

        await lifecycle.disconnect(first)

        assert await registry.set_members(user_sockets_key("alice")) == {second}
        assert await registry.get(socket_key(second)) == "alice"

    @pytest.mark.asyncio
    async def test_unregistered_disconnect_is_noop(self, lifecycle, registry):
        conn = await lifecycle.connect(FakeWebSocket())

        assert await lifecycle.disconnect(conn) is None
        assert await registry.exists(socket_key(conn)) is False

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_safe(self, lifecycle):
        conn = await lifecycle.connect(FakeWebSocket())
        await lifecycle.register(conn, {"userIdentity": "alice"})

        await lifecycle.disconnect(conn)
        assert await lifecycle.disconnect(conn) is None

    @pytest.mark.asyncio
    async def test_registry_failure_is_swallowed(self, hub):
        registry = AsyncMock()
        registry.get.side_effect = RegistryError("down")
        lifecycle = ConnectionLifecycleManager(
            registry, ConnectionRegistrar(registry, hub), hub
        )
        conn = await lifecycle.connect(FakeWebSocket())

        assert await lifecycle.disconnect(conn) is None
        assert conn not in hub


class TestHeartbeat:

    @pytest.mark.asyncio
    async def test_heartbeat_pings_and_refreshes(self, registry, registrar, hub):
        lifecycle = ConnectionLifecycleManager(
            registry, registrar, hub, heartbeat_interval=0.01
        )
        ws = FakeWebSocket()
        conn = await lifecycle.connect(ws)
        await lifecycle.register(conn, {"userIdentity": "alice"})
        registrar.refresh = AsyncMock()

        await asyncio.sleep(0.05)

        assert len(ws.frames("ping")) >= 1
        registrar.refresh.assert_awaited_with(conn, "alice")
        await lifecycle.disconnect(conn)

    @pytest.mark.asyncio
    async def test_shutdown_closes_sockets(self, registry, registrar, hub):
        lifecycle = ConnectionLifecycleManager(
            registry, registrar, hub, heartbeat_interval=60
        )
        ws = FakeWebSocket()
        await lifecycle.connect(ws)

        await lifecycle.shutdown()

        assert ws.closed_with == 1001
        assert len(hub) == 0
