"""Port between the bootstrap controller and a WhatsApp Web socket library."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol

from wasession.core.events import ConnectionEvent

UpdateHandler = Callable[[ConnectionEvent], Awaitable[None]]


class SessionSocket(Protocol):
    """What the controller needs from a socket.

    ``on_update`` receives every token and connection-state change. The
    socket persists credentials through the storage it was created with.
    """

    on_update: UpdateHandler

    @property
    def user_jid(self) -> Optional[str]: ...

    async def connect(self) -> None: ...

    async def request_pairing_code(self, phone_number: Optional[str]) -> str: ...

    async def send_text(self, jid: str, text: str) -> str: ...

    async def close(self) -> None: ...


class SocketFactory(Protocol):
    def __call__(self, storage: Any) -> SessionSocket: ...


async def noop_update(event: ConnectionEvent) -> None:
    del event
