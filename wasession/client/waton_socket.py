"""SessionSocket implementation backed by the waton WhatsApp Web library."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from wasession.client.socket import UpdateHandler, noop_update
from wasession.core.errors import PairingUnsupported
from wasession.core.events import ConnectionEvent, ConnectionState, DisconnectReason
from wasession.infra.storage_session import SessionFileStorage

logger = logging.getLogger(__name__)


def reason_from_exception(exc: object) -> DisconnectReason:
    if exc is None:
        return DisconnectReason.CONNECTION_CLOSED
    code = getattr(exc, "status_code", None)
    if code is None:
        # plain transport close, same as Baileys' connectionClosed
        return DisconnectReason.CONNECTION_CLOSED
    try:
        return DisconnectReason.from_status_code(int(code))
    except (TypeError, ValueError):
        return DisconnectReason.UNKNOWN


def translate_event(event: object) -> ConnectionEvent | None:
    """Map a waton ``ConnectionEvent`` onto the controller's event type."""
    status = getattr(event, "status", None)
    qr = getattr(event, "qr", None)
    if qr:
        return ConnectionEvent(state=ConnectionState.QR_READY, qr=str(qr))
    if status == "open":
        return ConnectionEvent(state=ConnectionState.OPEN)
    if status == "close":
        reason_obj = getattr(event, "reason", None)
        return ConnectionEvent(
            state=ConnectionState.CLOSED,
            reason=reason_from_exception(reason_obj),
            detail=str(reason_obj) if reason_obj else None,
        )
    if status in {"connecting", "pairing-success", "pairing-signed"}:
        return ConnectionEvent(state=ConnectionState.CONNECTING, detail=status)
    return None


class WatonStorageBridge:
    """Presents a :class:`SessionFileStorage` as waton's ``StoragePort``."""

    def __init__(self, storage: SessionFileStorage) -> None:
        self.storage = storage

    async def get_creds(self) -> Any:
        from waton.utils.auth import AuthCreds

        raw = await self.storage.get_creds()
        if raw is None:
            return None
        known = {f.name for f in dataclasses.fields(AuthCreds)}
        return AuthCreds(**{k: v for k, v in raw.items() if k in known})

    async def save_creds(self, creds: Any) -> None:
        await self.storage.save_creds(dataclasses.asdict(creds))

    async def get_session(self, jid: str) -> bytes | None:
        return await self.storage.get_session(jid)

    async def save_session(self, jid: str, data: bytes) -> None:
        await self.storage.save_session(jid, data)

    async def get_prekey(self, key_id: int) -> bytes | None:
        return await self.storage.get_prekey(key_id)

    async def save_prekey(self, key_id: int, data: bytes) -> None:
        await self.storage.save_prekey(key_id, data)

    async def get_sender_key(self, group_jid: str, sender_jid: str) -> bytes | None:
        return await self.storage.get_sender_key(group_jid, sender_jid)

    async def save_sender_key(self, group_jid: str, sender_jid: str, data: bytes) -> None:
        await self.storage.save_sender_key(group_jid, sender_jid, data)

    async def close(self) -> None:
        await self.storage.close()


class WatonSocket:
    def __init__(self, storage: SessionFileStorage, **config_overrides: Any) -> None:
        from waton.client.client import WAClient
        from waton.client.messages import MessagesAPI

        # restarts are decided by the bootstrap controller
        config_overrides.setdefault("auto_restart_on_515", False)
        self.on_update: UpdateHandler = noop_update
        self._client = WAClient(WatonStorageBridge(storage), **config_overrides)
        self._messages = MessagesAPI(self._client)
        self._client.on_connection_update = self._handle_connection_update
        self._client.on_disconnected = self._handle_disconnected

    @property
    def user_jid(self) -> Optional[str]:
        creds = self._client.creds
        if creds is None or not creds.me:
            return None
        from waton.core.jid import jid_normalized_user

        return jid_normalized_user(creds.me.get("id"))

    async def connect(self) -> None:
        await self._client.connect()

    async def request_pairing_code(self, phone_number: Optional[str]) -> str:
        request = getattr(self._client, "request_pairing_code", None)
        if request is None:
            raise PairingUnsupported("the installed waton client cannot request pairing codes")
        return await request(phone_number)

    async def send_text(self, jid: str, text: str) -> str:
        return await self._messages.send_text(jid, text)

    async def close(self) -> None:
        await self._client.disconnect()

    async def _handle_connection_update(self, event: object) -> None:
        translated = translate_event(event)
        if translated is None:
            logger.debug("ignoring waton connection update: %s", event)
            return
        await self.on_update(translated)

    async def _handle_disconnected(self, exc: Exception) -> None:
        logger.debug("waton client disconnected: %s", exc)


def waton_socket_factory(**config_overrides: Any):
    """Build a ``SocketFactory`` creating :class:`WatonSocket` instances."""

    def _factory(storage: SessionFileStorage) -> WatonSocket:
        return WatonSocket(storage, **dict(config_overrides))

    return _factory
