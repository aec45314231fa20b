"""Dropbox storage backend over the Dropbox HTTP API (httpx).

Research summary:
- Authentication is a bearer access token in the ``Authorization`` header.
- ``POST /2/users/get_current_account`` is a read-only call that proves the
  token is valid, used as the connection probe.
- ``POST content/2/files/upload`` takes the file body with its arguments JSON
  encoded in the ``Dropbox-API-Arg`` header; files above 150 MiB must go
  through ``upload_session/start``, ``append_v2`` and ``finish``.
- ``POST content/2/files/download`` streams a file back.
- Uploaded artifacts are addressed as ``dropbox:/backups/<filename>``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import httpx

from collector_backup.core.errors import NotFoundError, ProviderError, TransportError
from .base import CloudStorage
from .configs import DropboxConfig


API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"
LOCATION_PREFIX = "dropbox:"
SINGLE_UPLOAD_LIMIT = 150 * 1024 * 1024
SESSION_CHUNK_SIZE = 8 * 1024 * 1024
DEFAULT_TIMEOUT = httpx.Timeout(30.0, read=300.0, write=300.0)


def _api_arg(payload: dict[str, Any]) -> str:
    # ensure_ascii keeps non-ASCII paths header-safe, as the API requires
    return json.dumps(payload, ensure_ascii=True)


class DropboxStorage(CloudStorage):
    """Token-authenticated Dropbox app folder."""

    provider = "dropbox"

    def __init__(self, config: DropboxConfig, *, client: Optional[httpx.Client] = None) -> None:
        super().__init__()
        self.config = config
        self._client = client

    @classmethod
    def owns(cls, location: str) -> bool:
        return location.startswith(LOCATION_PREFIX)

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=DEFAULT_TIMEOUT)
        return self._client

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.config.access_token}"}
        headers.update(extra)
        return headers

    def _post(self, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._http().post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{action} failed: {exc}") from exc
        self._raise_for_status(resp, action)
        return resp

    @staticmethod
    def _json_body(resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if resp.status_code // 100 == 2:
            return
        summary = DropboxStorage._json_body(resp).get("error_summary") or resp.text[:500]
        if resp.status_code in (401, 403):
            raise TransportError(f"{action} failed: access token rejected", details=summary)
        raise ProviderError(f"{action} failed: HTTP {resp.status_code}", details=summary)

    def _put(self, local_path: Path, key: str) -> str:
        path = f"/{key}"
        size = local_path.stat().st_size
        self._logger.info("Uploading %s -> dropbox:%s (%s bytes)", local_path, path, size)
        if size <= SINGLE_UPLOAD_LIMIT:
            with local_path.open("rb") as fh:
                resp = self._post(
                    f"{CONTENT_URL}/files/upload",
                    "Upload",
                    headers=self._headers(
                        **{
                            "Dropbox-API-Arg": _api_arg(
                                {"path": path, "mode": "add", "autorename": True, "mute": False}
                            ),
                            "Content-Type": "application/octet-stream",
                        }
                    ),
                    content=fh.read(),
                )
        else:
            resp = self._put_session(local_path, path)
        stored_path = self._json_body(resp).get("path_display") or path
        return f"{LOCATION_PREFIX}{stored_path}"

    def _put_session(self, local_path: Path, path: str) -> httpx.Response:
        octet = {"Content-Type": "application/octet-stream"}
        with local_path.open("rb") as fh:
            first = fh.read(SESSION_CHUNK_SIZE)
            resp = self._post(
                f"{CONTENT_URL}/files/upload_session/start",
                "Upload",
                headers=self._headers(**octet, **{"Dropbox-API-Arg": _api_arg({"close": False})}),
                content=first,
            )
            session_id = self._json_body(resp).get("session_id")
            if not isinstance(session_id, str) or not session_id:
                raise ProviderError(
                    "Upload failed: upload_session/start returned no session id",
                    details=resp.text[:500],
                )
            offset = len(first)
            while True:
                chunk = fh.read(SESSION_CHUNK_SIZE)
                if not chunk:
                    break
                self._post(
                    f"{CONTENT_URL}/files/upload_session/append_v2",
                    "Upload",
                    headers=self._headers(
                        **octet,
                        **{
                            "Dropbox-API-Arg": _api_arg(
                                {"cursor": {"session_id": session_id, "offset": offset}, "close": False}
                            )
                        },
                    ),
                    content=chunk,
                )
                offset += len(chunk)
        return self._post(
            f"{CONTENT_URL}/files/upload_session/finish",
            "Upload",
            headers=self._headers(
                **octet,
                **{
                    "Dropbox-API-Arg": _api_arg(
                        {
                            "cursor": {"session_id": session_id, "offset": offset},
                            "commit": {"path": path, "mode": "add", "autorename": True, "mute": False},
                        }
                    )
                },
            ),
            content=b"",
        )

    def _probe(self) -> str:
        resp = self._post(f"{API_URL}/users/get_current_account", "Connection test", headers=self._headers())
        name = self._json_body(resp).get("name")
        if isinstance(name, dict):
            name = name.get("display_name")
        if name:
            return f"Successfully connected to Dropbox as {name}"
        return "Successfully connected to Dropbox"

    def download(self, location: str, destination: Path) -> Path:
        if not self.owns(location):
            raise NotFoundError(f"Not a Dropbox location: {location}")
        path = location[len(LOCATION_PREFIX):]
        destination.parent.mkdir(parents=True, exist_ok=True)
        self._logger.info("Downloading dropbox:%s -> %s", path, destination)
        headers = self._headers(**{"Dropbox-API-Arg": _api_arg({"path": path})})
        try:
            with self._http().stream("POST", f"{CONTENT_URL}/files/download", headers=headers) as resp:
                if resp.status_code // 100 != 2:
                    resp.read()
                    self._raise_for_status(resp, "Download")
                with destination.open("wb") as fh:
                    for chunk in resp.iter_bytes():
                        fh.write(chunk)
        except httpx.HTTPError as exc:
            raise TransportError(f"Download failed: {exc}") from exc
        return destination
