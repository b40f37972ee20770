import asyncio
from types import SimpleNamespace

import pytest

from wasession.client.socket import noop_update
from wasession.client.waton_socket import reason_from_exception, translate_event
from wasession.core.events import ConnectionEvent, ConnectionState, DisconnectReason


def test_qr_update_becomes_qr_ready() -> None:
    event = translate_event(SimpleNamespace(status="connecting", qr="2@ref,noise,identity,adv", reason=None))
    assert event.state is ConnectionState.QR_READY
    assert event.qr == "2@ref,noise,identity,adv"


def test_open_update() -> None:
    event = translate_event(SimpleNamespace(status="open", qr=None, reason=None))
    assert event.state is ConnectionState.OPEN


@pytest.mark.parametrize(
    ("status_code", "reason"),
    [
        (515, DisconnectReason.RESTART_REQUIRED),
        (408, DisconnectReason.TIMED_OUT),
        (401, DisconnectReason.LOGGED_OUT),
        (440, DisconnectReason.CONNECTION_REPLACED),
    ],
)
def test_close_update_carries_reason(status_code, reason) -> None:
    exc = SimpleNamespace(status_code=status_code)
    event = translate_event(SimpleNamespace(status="close", qr=None, reason=exc))
    assert event.state is ConnectionState.CLOSED
    assert event.reason is reason


def test_close_without_status_code_is_connection_closed() -> None:
    assert reason_from_exception(None) is DisconnectReason.CONNECTION_CLOSED
    assert reason_from_exception(RuntimeError("socket closed")) is DisconnectReason.CONNECTION_CLOSED
    assert reason_from_exception(SimpleNamespace(status_code="n/a")) is DisconnectReason.UNKNOWN


@pytest.mark.parametrize("status", ["connecting", "pairing-success", "pairing-signed"])
def test_progress_updates_map_to_connecting(status) -> None:
    event = translate_event(SimpleNamespace(status=status, qr=None, reason=None))
    assert event.state is ConnectionState.CONNECTING
    assert event.detail == status


def test_unknown_update_is_ignored() -> None:
    assert translate_event(SimpleNamespace(status="syncing", qr=None, reason=None)) is None


def test_storage_bridge_round_trips_auth_creds(tmp_path) -> None:
    auth = pytest.importorskip("waton.utils.auth")
    from wasession.client.waton_socket import WatonStorageBridge
    from wasession.infra.storage_session import SessionFileStorage

    creds = auth.AuthCreds(
        noise_key={"private": b"\x01" * 32, "public": b"\x02" * 32},
        pairing_ephemeral_key_pair={"private": b"\x03" * 32, "public": b"\x04" * 32},
        signed_identity_key={"private": b"\x05" * 32, "public": b"\x06" * 32},
        signed_pre_key={
            "key_pair": {"private": b"\x07" * 32, "public": b"\x08" * 32},
            "signature": b"\x09" * 64,
            "key_id": 1,
        },
        registration_id=4242,
        adv_secret_key="c2VjcmV0",
        registered=True,
        routing_info=b"\x0a\x0b",
        me={"id": "15551234567:3@s.whatsapp.net"},
    )
    storage = SessionFileStorage(tmp_path)
    bridge = WatonStorageBridge(storage)

    async def _scenario():
        assert await bridge.get_creds() is None
        await bridge.save_creds(creds)
        return await bridge.get_creds(), await storage.is_registered()

    loaded, registered = asyncio.run(_scenario())

    assert loaded == creds
    assert registered is True
    assert storage.credentials_path.exists()


def test_user_jid_drops_device_suffix() -> None:
    pytest.importorskip("waton.core.jid")
    from wasession.client.waton_socket import WatonSocket

    sock = object.__new__(WatonSocket)
    sock._client = SimpleNamespace(creds=SimpleNamespace(me={"id": "15551234567:3@s.whatsapp.net"}))
    assert sock.user_jid == "15551234567@s.whatsapp.net"

    sock._client = SimpleNamespace(creds=None)
    assert sock.user_jid is None


def test_default_update_handler_ignores_events() -> None:
    event = ConnectionEvent(state=ConnectionState.OPEN)
    assert asyncio.run(noop_update(event)) is None
