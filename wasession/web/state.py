from __future__ import annotations

import concurrent.futures
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from wasession.core.events import PresentationMode, Token

FINISHED_STATES = frozenset({"completed", "failed", "closed"})


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def mask_phone(phone_number: Optional[str]) -> Optional[str]:
    if not phone_number:
        return None
    return f"{'*' * max(0, len(phone_number) - 4)}{phone_number[-4:]}"


@dataclass(slots=True)
class SessionRecord:
    mode: PresentationMode
    phone_number: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: str = "pending"
    attempts: int = 0
    session_id: Optional[str] = None
    confirmation_delivered: Optional[bool] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=_utc_now_iso)
    updated_at: str = field(default_factory=_utc_now_iso)
    token_future: concurrent.futures.Future[Token] = field(default_factory=concurrent.futures.Future, repr=False)

    @property
    def finished(self) -> bool:
        return self.state in FINISHED_STATES

    def update(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self, key, value)
        self.updated_at = _utc_now_iso()

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "mode": self.mode.value,
            "phone_number": mask_phone(self.phone_number),
            "state": self.state,
            "attempts": self.attempts,
            "token_sent": self.token_future.done() and self.token_future.exception() is None,
            "session_id": self.session_id,
            "confirmation_delivered": self.confirmation_delivered,
            "reason": self.reason,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class SessionRegistry:
    """Recent bootstrap records, oldest finished ones evicted first."""

    def __init__(self, max_records: int = 500) -> None:
        self._max_records = max(1, int(max_records))
        self._records: OrderedDict[str, SessionRecord] = OrderedDict()
        self._lock = threading.Lock()

    def create(self, mode: PresentationMode, phone_number: Optional[str] = None) -> SessionRecord:
        record = SessionRecord(mode=mode, phone_number=phone_number)
        with self._lock:
            self._records[record.request_id] = record
            self._evict()
        return record

    def get(self, request_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(request_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _evict(self) -> None:
        overflow = len(self._records) - self._max_records
        if overflow <= 0:
            return
        for request_id in [rid for rid, rec in self._records.items() if rec.finished][:overflow]:
            del self._records[request_id]
