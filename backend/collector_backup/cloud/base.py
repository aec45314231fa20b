"""Base class for cloud storage backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from collector_backup.core.errors import BackupSystemError, NotFoundError, TransportError


BACKUP_PREFIX = "backups"


@dataclass
class UploadResult:
    success: bool
    url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ConnectionTestResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    missing_fields: Optional[list[str]] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CloudStorage(ABC):
    """Uniform upload / probe / fetch contract over one backend.

    `upload` and `test_connection` report failures as results and never
    raise; `download` raises because a failed fetch is fatal to its callers.
    """

    provider: str = ""

    def __init__(self) -> None:
        self._logger = logging.getLogger(f"{__name__}.{self.provider or type(self).__name__}")

    @classmethod
    @abstractmethod
    def owns(cls, location: str) -> bool:
        """Whether `location` is a URL produced by this backend."""

    @abstractmethod
    def _put(self, local_path: Path, key: str) -> str:
        """Store the file under `key` and return its durable URL."""

    @abstractmethod
    def _probe(self) -> str:
        """Prove credentials and reachability without creating an artifact."""

    @abstractmethod
    def download(self, location: str, destination: Path) -> Path:
        """Fetch the artifact at `location` to `destination`."""

    def upload(self, local_path: str | Path, filename: str) -> UploadResult:
        path = Path(local_path)
        key = f"{BACKUP_PREFIX}/{filename}"
        try:
            if not path.is_file():
                raise NotFoundError(f"Backup file not found on disk: {path}")
            url = self._put(path, key)
        except BackupSystemError as exc:
            self._logger.error("cloud_upload_failed | provider=%s key=%s kind=%s error=%s", self.provider, key, exc.kind, exc)
            return UploadResult(success=False, error=exc.message, error_kind=exc.kind)
        except OSError as exc:
            self._logger.error("cloud_upload_io_error | provider=%s path=%s error=%s", self.provider, path, exc)
            return UploadResult(success=False, error=f"Could not read backup file: {exc}", error_kind="io")
        except Exception as exc:
            # SDK and response-parsing failures surface as results like any other
            self._logger.exception("cloud_upload_unexpected_error | provider=%s key=%s", self.provider, key)
            return UploadResult(success=False, error=f"Upload failed: {exc}", error_kind=TransportError.kind)
        self._logger.info("cloud_upload_success | provider=%s url=%s", self.provider, url)
        return UploadResult(success=True, url=url)

    def test_connection(self) -> ConnectionTestResult:
        try:
            message = self._probe()
        except BackupSystemError as exc:
            self._logger.warning("cloud_probe_failed | provider=%s kind=%s error=%s", self.provider, exc.kind, exc)
            return ConnectionTestResult(
                success=False,
                error=exc.message,
                error_kind=exc.kind,
                missing_fields=getattr(exc, "missing_fields", None) or None,
            )
        except Exception as exc:
            self._logger.exception("cloud_probe_unexpected_error | provider=%s", self.provider)
            return ConnectionTestResult(
                success=False, error=f"Connection test failed: {exc}", error_kind=TransportError.kind
            )
        return ConnectionTestResult(success=True, message=message)
