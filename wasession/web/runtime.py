from __future__ import annotations

import asyncio
import atexit
import concurrent.futures
import contextlib
import logging
import threading
import time
from typing import Any, Callable, Optional

from wasession.client.controller import BootstrapController
from wasession.client.socket import SocketFactory
from wasession.core.errors import (
    BootstrapTimeout,
    CapacityError,
    ConnectionTerminated,
    DisconnectFatal,
    WaSessionError,
)
from wasession.core.events import BootstrapEvent, PresentationMode, Token
from wasession.infra.arena import CredentialArena
from wasession.infra.upload import RemoteUploader
from wasession.utils.settings import Settings

from .state import SessionRecord, SessionRegistry

logger = logging.getLogger(__name__)

FatalHandler = Callable[[DisconnectFatal], None]

# slack on top of the token window so the controller's own timeout wins
_TOKEN_WAIT_SLACK_S = 5.0


def _default_socket_factory() -> SocketFactory:
    from wasession.client.waton_socket import waton_socket_factory

    return waton_socket_factory()


class BootstrapRuntime:
    """Runs bootstraps on a private event loop and supervises them.

    Flask handlers call :meth:`start` and :meth:`wait_for_token` from their
    own threads; everything else happens on the loop thread. Fatal
    disconnects are handed to ``on_fatal``, which decides what happens to
    the process.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        socket_factory: SocketFactory | None = None,
        uploader: RemoteUploader | None = None,
        arena: CredentialArena | None = None,
        controller: BootstrapController | None = None,
        on_fatal: FatalHandler | None = None,
    ) -> None:
        self.settings = settings
        self.arena = arena or CredentialArena(settings.session_root)
        self.uploader = uploader or RemoteUploader(settings.upload)
        self.controller = controller or BootstrapController(
            socket_factory or _default_socket_factory(),
            self.arena,
            self.uploader,
            settings.bootstrap,
        )
        self.on_fatal: FatalHandler = on_fatal or self._log_fatal
        self._records = SessionRegistry(max_records=settings.max_session_records)
        self._tasks: dict[str, concurrent.futures.Future[None]] = {}
        self._tasks_lock = threading.Lock()
        self._closed = False
        self._fatal_count = 0
        self._started_at = time.monotonic()

        self._loop = asyncio.new_event_loop()
        self._started = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, name="wasession-loop", daemon=True)
        self._thread.start()
        self._started.wait(timeout=2.0)

        atexit.register(self.close)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._started.set()
        self._loop.run_forever()

    def _run_coro_sync(self, coro: Any, timeout: float = 30.0) -> Any:
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return fut.result(timeout=timeout)

    def start(self, mode: PresentationMode, phone_number: Optional[str] = None) -> SessionRecord:
        with self._tasks_lock:
            if self._closed:
                raise CapacityError("server is shutting down")
            if len(self._tasks) >= self.settings.max_concurrent_sessions:
                raise CapacityError("too many concurrent sessions, try again shortly")
            record = self._records.create(mode, phone_number)
            fut = asyncio.run_coroutine_threadsafe(self._drive(record), self._loop)
            self._tasks[record.request_id] = fut
        fut.add_done_callback(lambda _: self._forget(record.request_id))
        logger.info("bootstrap started", extra={"request_id": record.request_id, "mode": mode.value})
        return record

    def wait_for_token(self, record: SessionRecord, timeout: float | None = None) -> Token:
        if timeout is None:
            timeout = self.settings.bootstrap.token_timeout_s + _TOKEN_WAIT_SLACK_S
        try:
            return record.token_future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            raise BootstrapTimeout(f"no token within {timeout:.0f}s", timeout) from exc

    def get_record(self, request_id: str) -> Optional[SessionRecord]:
        return self._records.get(request_id)

    def stats(self) -> dict[str, Any]:
        with self._tasks_lock:
            active = len(self._tasks)
        return {
            "active_sessions": active,
            "max_sessions": self.settings.max_concurrent_sessions,
            "credential_dirs": len(self.arena.active()),
            "records": len(self._records),
            "fatal_disconnects": self._fatal_count,
            "uptime_s": round(time.monotonic() - self._started_at, 1),
        }

    def close(self) -> None:
        with self._tasks_lock:
            if self._closed:
                return
            self._closed = True
        if not self._loop.is_running():
            return
        with contextlib.suppress(Exception):
            self._run_coro_sync(self._shutdown_async())
        self._loop.call_soon_threadsafe(self._loop.stop)

    async def _shutdown_async(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.arena.release_all()

    async def _drive(self, record: SessionRecord) -> None:
        extra = {"request_id": record.request_id}
        events = self.controller.begin(
            record.mode,
            phone_number=record.phone_number,
            request_id=record.request_id,
        )
        try:
            async with contextlib.aclosing(events):
                async for event in events:
                    self._apply(record, event)
        except DisconnectFatal as exc:
            self._fail(record, exc)
            self._fatal_count += 1
            try:
                self.on_fatal(exc)
            except Exception:
                logger.exception("fatal disconnect handler failed", extra=extra)
        except asyncio.CancelledError:
            self._fail(record, ConnectionTerminated("cancelled"))
            raise
        except WaSessionError as exc:
            self._fail(record, exc)
        except Exception as exc:
            logger.exception("bootstrap crashed", extra=extra)
            self._fail(record, exc)
        else:
            if not record.token_future.done():
                record.token_future.set_exception(ConnectionTerminated(record.reason or "closed before token"))

    def _apply(self, record: SessionRecord, event: BootstrapEvent) -> None:
        record.update(attempts=event.attempt)
        if event.kind == "token" and event.token is not None:
            record.update(state="token-sent")
            if not record.token_future.done():
                record.token_future.set_result(event.token)
        elif event.kind == "retry":
            record.update(reason=event.reason.value if event.reason else None)
        elif event.kind == "open":
            record.update(state="linked")
        elif event.kind == "uploaded":
            record.update(state="uploaded", session_id=event.session_id)
        elif event.kind == "confirmed":
            record.update(confirmation_delivered=bool(event.data.get("delivered")))
        elif event.kind == "completed":
            record.update(state="completed", session_id=event.session_id)
            logger.info("bootstrap completed", extra={"request_id": record.request_id})
        elif event.kind == "closed":
            reason = event.reason.value if event.reason else None
            record.update(state="closed", reason=reason)
            if not record.token_future.done():
                record.token_future.set_exception(ConnectionTerminated(reason))

    def _fail(self, record: SessionRecord, exc: BaseException) -> None:
        record.update(state="failed", error=str(exc))
        if not record.token_future.done():
            record.token_future.set_exception(exc)
        logger.warning("bootstrap failed: %s", exc, extra={"request_id": record.request_id})

    def _forget(self, request_id: str) -> None:
        with self._tasks_lock:
            self._tasks.pop(request_id, None)

    @staticmethod
    def _log_fatal(exc: DisconnectFatal) -> None:
        logger.critical("unrecoverable disconnect: %s", exc)
