"""Session bootstrap: socket -> token -> link -> upload -> confirmation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from wasession.client.emitter import render
from wasession.client.socket import SessionSocket, SocketFactory
from wasession.core.errors import (
    BootstrapTimeout,
    CredentialsMissing,
    DisconnectFatal,
    RetriesExhausted,
)
from wasession.core.events import (
    BootstrapEvent,
    ConnectionEvent,
    ConnectionState,
    DisconnectReason,
    PresentationMode,
    Token,
)
from wasession.core.gate import OneShotGate
from wasession.infra.arena import CredentialArena
from wasession.infra.storage_session import SessionFileStorage
from wasession.infra.upload import RemoteUploader, derive_session_id
from wasession.utils.settings import BootstrapSettings

logger = logging.getLogger(__name__)


@dataclass
class BootstrapRequest:
    """State of one bootstrap, shared by all of its attempts."""

    request_id: str
    mode: PresentationMode
    phone_number: Optional[str] = None
    gate: OneShotGate = field(default_factory=OneShotGate)
    attempt: int = 0
    deadline: float = 0.0
    carried: Optional[dict[str, Any]] = None
    directories: list[str] = field(default_factory=list)

    def log_extra(self) -> dict[str, Any]:
        return {"request_id": self.request_id, "attempt": self.attempt, "mode": self.mode.value}


class BootstrapController:
    """Runs device-link bootstraps as async event streams.

    ``begin`` yields :class:`BootstrapEvent` items: ``token`` once, ``retry``
    before each new attempt, then ``open``, ``uploaded``, ``confirmed`` and
    ``completed`` when the phone finishes linking, or ``closed`` when the
    connection was lost and the request is abandoned. Errors (timeouts,
    upload failures, fatal disconnects) are raised out of the stream.
    """

    def __init__(
        self,
        socket_factory: SocketFactory,
        arena: CredentialArena,
        uploader: RemoteUploader,
        settings: BootstrapSettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.socket_factory = socket_factory
        self.arena = arena
        self.uploader = uploader
        self.settings = settings or BootstrapSettings()
        self._sleep = sleep

    async def begin(
        self,
        mode: PresentationMode,
        *,
        phone_number: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> AsyncIterator[BootstrapEvent]:
        loop = asyncio.get_running_loop()
        request = BootstrapRequest(
            request_id=request_id or uuid.uuid4().hex,
            mode=mode,
            phone_number=phone_number,
        )
        request.deadline = loop.time() + self.settings.token_timeout_s
        max_attempts = max(1, int(self.settings.max_attempts))

        while True:
            request.attempt += 1
            disconnect: BootstrapEvent | None = None
            async with contextlib.aclosing(self._run_attempt(request)) as events:
                async for event in events:
                    if event.kind == "disconnected":
                        disconnect = event
                        continue
                    yield event

            if disconnect is None:
                return

            reason = disconnect.reason or DisconnectReason.UNKNOWN
            if reason.is_retryable:
                if request.attempt >= max_attempts:
                    raise RetriesExhausted(reason.value, request.attempt)
                delay = self.settings.backoff_for(request.attempt)
                logger.info(
                    "connection closed (%s), retrying in %.2fs",
                    reason.value,
                    delay,
                    extra=request.log_extra(),
                )
                yield self._event("retry", request, reason=reason, data={"delay_s": delay})
                if delay > 0:
                    await self._sleep(delay)
                continue

            if reason.is_terminal:
                logger.info("connection closed (%s), abandoning request", reason.value, extra=request.log_extra())
                yield self._event("closed", request, reason=reason)
                return

            raise DisconnectFatal(reason.value, disconnect.data.get("detail"))

    async def _run_attempt(self, request: BootstrapRequest) -> AsyncIterator[BootstrapEvent]:
        loop = asyncio.get_running_loop()
        storage = await self.arena.allocate(request.request_id)
        request.directories.append(str(storage.directory))
        updates: asyncio.Queue[ConnectionEvent] = asyncio.Queue()

        async def _on_update(event: ConnectionEvent) -> None:
            updates.put_nowait(event)

        socket: SessionSocket | None = None
        try:
            if request.carried is not None:
                carried, request.carried = request.carried, None
                await storage.restore(carried)
            socket = self.socket_factory(storage)
            socket.on_update = _on_update
            await self._within_deadline(socket.connect(), request)

            while True:
                event = await self._within_deadline(updates.get(), request)

                if event.state is ConnectionState.QR_READY:
                    if request.gate.fired:
                        logger.debug("token already sent, dropping new QR", extra=request.log_extra())
                        continue
                    token = await self._within_deadline(self._make_token(socket, event, request), request)
                    if not request.gate.fire():
                        continue
                    request.deadline = loop.time() + self.settings.link_timeout_s
                    logger.info("token ready", extra=request.log_extra())
                    yield self._event("token", request, token=token)

                elif event.state is ConnectionState.OPEN:
                    logger.info("device linked", extra=request.log_extra())
                    yield self._event("open", request)
                    async for done in self._complete(socket, storage, request):
                        yield done
                    return

                elif event.state is ConnectionState.CLOSED:
                    reason = event.reason or DisconnectReason.UNKNOWN
                    if reason.is_retryable and await storage.is_registered():
                        request.carried = await storage.snapshot()
                    yield self._event("disconnected", request, reason=reason, data={"detail": event.detail})
                    return
        finally:
            if socket is not None:
                try:
                    await socket.close()
                except Exception:
                    logger.warning("socket close failed", exc_info=True, extra=request.log_extra())
            await self.arena.release(request.request_id)

    async def _make_token(
        self,
        socket: SessionSocket,
        event: ConnectionEvent,
        request: BootstrapRequest,
    ) -> Token:
        if request.mode is PresentationMode.PAIRING_CODE:
            raw = await socket.request_pairing_code(request.phone_number)
        else:
            raw = event.qr or ""
        return render(raw, request.mode)

    async def _complete(
        self,
        socket: SessionSocket,
        storage: SessionFileStorage,
        request: BootstrapRequest,
    ) -> AsyncIterator[BootstrapEvent]:
        if self.settings.settle_delay_s > 0:
            await self._sleep(self.settings.settle_delay_s)

        payload = await storage.read_credentials()
        if payload is None:
            raise CredentialsMissing("socket opened but no credentials were written")

        name = f"{secrets.token_urlsafe(16)}.json"
        url = await self.uploader.upload(payload, name)
        session_id = derive_session_id(url, self.settings.upload_url_prefix, self.settings.session_id_prefix)
        yield self._event("uploaded", request, session_id=session_id, data={"url": url})

        delivered = False
        jid = socket.user_jid
        if jid:
            text = self.settings.confirmation_message.replace("{session_id}", session_id)
            try:
                message_id = await socket.send_text(jid, text)
                delivered = True
                logger.info("confirmation sent (%s)", message_id, extra=request.log_extra())
            except Exception:
                logger.warning("confirmation message failed", exc_info=True, extra=request.log_extra())
        else:
            logger.warning("linked account JID unknown, confirmation skipped", extra=request.log_extra())
        yield self._event("confirmed", request, session_id=session_id, data={"delivered": delivered})
        yield self._event("completed", request, session_id=session_id)

    async def _within_deadline(self, aw: Awaitable[Any], request: BootstrapRequest) -> Any:
        remaining = request.deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(aw, timeout=max(0.0, remaining))
        except asyncio.TimeoutError as exc:
            if request.gate.fired:
                limit = self.settings.link_timeout_s
                message = f"device link not completed within {limit:.0f}s"
            else:
                limit = self.settings.token_timeout_s
                message = f"no token within {limit:.0f}s"
            logger.warning(message, extra=request.log_extra())
            raise BootstrapTimeout(message, limit) from exc

    @staticmethod
    def _event(kind: str, request: BootstrapRequest, **kwargs: Any) -> BootstrapEvent:
        return BootstrapEvent(kind=kind, request_id=request.request_id, attempt=request.attempt, **kwargs)
