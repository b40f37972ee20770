"""Per-request isolated credential directories."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import threading
from pathlib import Path

from wasession.infra.storage_session import SessionFileStorage

logger = logging.getLogger(__name__)


class CredentialArena:
    """Hands out one fresh directory per bootstrap attempt, keyed by request ID.

    Directories are never shared: every ``allocate`` creates a new uniquely
    named directory under ``root``, even for a retry of the same request.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._handles: dict[str, SessionFileStorage] = {}
        self._lock = threading.Lock()

    def active(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def get(self, request_id: str) -> SessionFileStorage | None:
        with self._lock:
            return self._handles.get(request_id)

    async def allocate(self, request_id: str) -> SessionFileStorage:
        await self.release(request_id)
        directory = await asyncio.to_thread(self._make_directory, request_id)
        storage = SessionFileStorage(directory)
        with self._lock:
            self._handles[request_id] = storage
        logger.debug("allocated credential directory %s", directory, extra={"request_id": request_id})
        return storage

    async def release(self, request_id: str) -> None:
        with self._lock:
            storage = self._handles.pop(request_id, None)
        if storage is None:
            return
        await storage.close()
        await asyncio.to_thread(shutil.rmtree, storage.directory, True)
        logger.debug("released credential directory %s", storage.directory, extra={"request_id": request_id})

    async def release_all(self) -> None:
        for request_id in self.active():
            await self.release(request_id)

    def purge(self) -> int:
        """Remove directories left behind by a previous process."""
        if not self.root.exists():
            return 0
        with self._lock:
            live = {storage.directory for storage in self._handles.values()}
        removed = 0
        for child in self.root.iterdir():
            if child.is_dir() and child not in live:
                shutil.rmtree(child, ignore_errors=True)
                removed += 1
        if removed:
            logger.info("purged %s stale credential directories from %s", removed, self.root)
        return removed

    def _make_directory(self, request_id: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        safe_id = "".join(ch for ch in request_id if ch.isalnum() or ch in "-_")[:40] or "session"
        return Path(tempfile.mkdtemp(prefix=f"{safe_id}-", dir=self.root))
