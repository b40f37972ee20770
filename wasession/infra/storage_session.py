"""JSON-file credential store bound to one session directory."""

from __future__ import annotations

import asyncio
import copy
import json
from base64 import b64decode, b64encode
from pathlib import Path
from typing import Any

from wasession.defaults.config import CREDENTIALS_FILENAME, KEYS_FILENAME

_BYTES_TAG = "__b64__"


def encode_value(value: Any) -> Any:
    """Make credential material JSON-safe, tagging raw bytes."""
    if isinstance(value, (bytes, bytearray)):
        return {_BYTES_TAG: b64encode(bytes(value)).decode("utf-8")}
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_BYTES_TAG}:
            return b64decode(value[_BYTES_TAG].encode("utf-8"))
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _empty_keys() -> dict[str, Any]:
    return {"sessions": {}, "prekeys": {}, "sender_keys": {}}


class SessionFileStorage:
    """Credential store for a single bootstrap attempt.

    Credentials are kept in ``creds.json`` (the file that is uploaded once the
    device is linked); signal sessions, pre-keys and sender keys go to
    ``keys.json`` next to it.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = asyncio.Lock()

    @property
    def credentials_path(self) -> Path:
        return self.directory / CREDENTIALS_FILENAME

    @property
    def keys_path(self) -> Path:
        return self.directory / KEYS_FILENAME

    async def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        raw = await asyncio.to_thread(path.read_text, "utf-8")
        return json.loads(raw)

    async def _write_json(self, path: Path, data: Any) -> None:
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)
        payload = json.dumps(data, separators=(",", ":"))
        tmp = path.with_suffix(path.suffix + ".tmp")
        await asyncio.to_thread(tmp.write_text, payload, "utf-8")
        await asyncio.to_thread(tmp.replace, path)

    async def _read_keys(self) -> dict[str, Any]:
        data = await self._read_json(self.keys_path)
        keys = _empty_keys()
        if isinstance(data, dict):
            for name in keys:
                bucket = data.get(name)
                if isinstance(bucket, dict):
                    keys[name] = bucket
        return keys

    async def get_creds(self) -> dict[str, Any] | None:
        raw = await self._read_json(self.credentials_path)
        if raw is None:
            return None
        return decode_value(raw)

    async def save_creds(self, creds: dict[str, Any]) -> None:
        async with self._lock:
            await self._write_json(self.credentials_path, encode_value(creds))

    async def read_credentials(self) -> bytes | None:
        """Raw bytes of ``creds.json``, as uploaded."""
        if not self.credentials_path.exists():
            return None
        return await asyncio.to_thread(self.credentials_path.read_bytes)

    async def is_registered(self) -> bool:
        creds = await self.get_creds()
        if not creds:
            return False
        return bool(creds.get("registered")) or bool(creds.get("me"))

    async def get_session(self, jid: str) -> bytes | None:
        keys = await self._read_keys()
        data = keys["sessions"].get(jid)
        if data is None:
            return None
        return b64decode(data.encode("utf-8"))

    async def save_session(self, jid: str, data: bytes) -> None:
        async with self._lock:
            keys = await self._read_keys()
            keys["sessions"][jid] = b64encode(data).decode("utf-8")
            await self._write_json(self.keys_path, keys)

    async def get_prekey(self, key_id: int) -> bytes | None:
        keys = await self._read_keys()
        data = keys["prekeys"].get(str(key_id))
        if data is None:
            return None
        return b64decode(data.encode("utf-8"))

    async def save_prekey(self, key_id: int, data: bytes) -> None:
        async with self._lock:
            keys = await self._read_keys()
            keys["prekeys"][str(key_id)] = b64encode(data).decode("utf-8")
            await self._write_json(self.keys_path, keys)

    async def get_sender_key(self, group_jid: str, sender_jid: str) -> bytes | None:
        keys = await self._read_keys()
        data = keys["sender_keys"].get(group_jid, {}).get(sender_jid)
        if data is None:
            return None
        return b64decode(data.encode("utf-8"))

    async def save_sender_key(self, group_jid: str, sender_jid: str, data: bytes) -> None:
        async with self._lock:
            keys = await self._read_keys()
            bucket = keys["sender_keys"].setdefault(group_jid, {})
            bucket[sender_jid] = b64encode(data).decode("utf-8")
            await self._write_json(self.keys_path, keys)

    async def snapshot(self) -> dict[str, Any]:
        """Everything needed to continue a linked session in another directory."""
        return {
            "creds": await self._read_json(self.credentials_path),
            "keys": await self._read_keys(),
        }

    async def restore(self, snapshot: dict[str, Any]) -> None:
        async with self._lock:
            creds = snapshot.get("creds")
            if creds is not None:
                await self._write_json(self.credentials_path, copy.deepcopy(creds))
            keys = snapshot.get("keys")
            if keys:
                await self._write_json(self.keys_path, copy.deepcopy(keys))

    async def close(self) -> None:
        return None
