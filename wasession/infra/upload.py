"""Push finished credential files to remote object storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable
from urllib.parse import quote

import httpx

from wasession.core.errors import UploadError
from wasession.defaults.config import UPLOAD_CONTENT_TYPE, UPLOAD_TIMEOUT_S

logger = logging.getLogger(__name__)


@dataclass
class UploadConfig:
    endpoint: str | None = None
    token: str | None = None
    public_base_url: str | None = None
    timeout_s: float = UPLOAD_TIMEOUT_S

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.token)


class RemoteUploader:
    """Uploads a file with an authenticated ``PUT {endpoint}/{name}``.

    The retrieval URL is taken from the response's ``url`` field when the
    storage service returns one, otherwise it is built from
    ``public_base_url``. Failures raise :class:`UploadError` and are not
    retried here.
    """

    def __init__(
        self,
        config: UploadConfig,
        *,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ) -> None:
        self.config = config
        self._client_factory = client_factory

    async def upload(self, data: bytes | BinaryIO, name: str) -> str:
        if not self.config.configured:
            raise UploadError("upload service credentials are not configured")
        if not name:
            raise UploadError("upload name must be non-empty")

        payload = data.read() if hasattr(data, "read") else data
        if not isinstance(payload, (bytes, bytearray)):
            raise UploadError("upload payload must be bytes or a binary stream")

        target = f"{str(self.config.endpoint).rstrip('/')}/{quote(name)}"
        headers = {
            "Authorization": f"Bearer {self.config.token}",
            "Content-Type": UPLOAD_CONTENT_TYPE,
        }
        async with self._client_factory(timeout=self.config.timeout_s) as http:
            try:
                res = await http.put(target, content=bytes(payload), headers=headers)
            except httpx.HTTPError as exc:
                raise UploadError(f"upload request failed: {exc}") from exc

        if res.status_code in (401, 403):
            raise UploadError("upload rejected: bad storage credentials", status_code=res.status_code)
        if res.status_code >= 400:
            raise UploadError(f"upload failed with HTTP {res.status_code}", status_code=res.status_code)

        url = self._url_from_response(res) or self._public_url(name)
        if not url:
            raise UploadError("storage did not return a URL and no public base URL is configured")
        logger.info("uploaded %s (%s bytes)", name, len(payload))
        return url

    def _public_url(self, name: str) -> str | None:
        if not self.config.public_base_url:
            return None
        return f"{self.config.public_base_url.rstrip('/')}/{quote(name)}"

    @staticmethod
    def _url_from_response(res: httpx.Response) -> str | None:
        if "json" not in res.headers.get("content-type", ""):
            return None
        try:
            body: Any = res.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            url = body.get("url")
            if isinstance(url, str) and url:
                return url
        return None


def derive_session_id(url: str, url_prefix: str = "", id_prefix: str = "") -> str:
    """Short shareable identifier: the URL with a known prefix stripped."""
    tail = url[len(url_prefix):] if url_prefix and url.startswith(url_prefix) else url
    return f"{id_prefix}{tail}"
