"""S3 and Cloudflare R2 storage backends (boto3, S3-compatible API)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from collector_backup.core.errors import ConfigurationError, NotFoundError, ProviderError, TransportError
from .base import CloudStorage
from .configs import R2Config, S3Config


CONTENT_TYPE = "application/sql"

# Credential / signature problems are transport-level auth failures, everything
# else reported by the service is the provider rejecting the request.
_AUTH_ERROR_CODES = {
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "InvalidToken",
    "ExpiredToken",
    "AccessDenied",
    "403",
    "Forbidden",
}
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}


def _map_error(exc: Exception, action: str) -> Exception:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
        code = str(error.get("Code", ""))
        message = error.get("Message") or str(exc)
        if code in _AUTH_ERROR_CODES:
            return TransportError(f"{action} failed: authentication rejected ({code})", details=message)
        if code in _NOT_FOUND_CODES:
            return ProviderError(f"{action} failed: {code}", details=message)
        return ProviderError(f"{action} failed: {message}", details=code or None)
    if isinstance(exc, Boto3Error):
        # upload_file wraps service errors in S3UploadFailedError
        return ProviderError(f"{action} failed: {exc}")
    return TransportError(f"{action} failed: {exc}")


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """Parse an s3://bucket/key URI into (bucket, key).

    Raises:
        ValueError: If the URI is not a valid s3:// URI.
    """
    if not uri.startswith("s3://"):
        raise ValueError(f"Not a valid S3 URI: {uri}")
    parts = uri[5:].split("/", 1)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid S3 URI (missing bucket or key): {uri}")
    return parts[0], parts[1]


class S3Storage(CloudStorage):
    """Amazon S3 bucket in a fixed region."""

    provider = "s3"

    def __init__(self, config: S3Config, *, client: Optional[Any] = None) -> None:
        super().__init__()
        self.config = config
        self._client = client

    @property
    def bucket(self) -> str:
        return self.config.bucket

    @classmethod
    def owns(cls, location: str) -> bool:
        if location.startswith("s3://"):
            return True
        host = urlparse(location).hostname or ""
        return location.startswith("https://") and host.endswith(".amazonaws.com") and ".s3" in host

    def _client_kwargs(self) -> dict:
        return {
            "service_name": "s3",
            "region_name": self.config.region,
            "aws_access_key_id": self.config.access_key_id,
            "aws_secret_access_key": self.config.secret_access_key,
        }

    def client(self) -> Any:
        """Create (once) a boto3 S3 client from the provider config."""
        if self._client is None:
            try:
                self._client = boto3.client(**self._client_kwargs())
            except ValueError as exc:
                # botocore rejects malformed endpoints / regions with a bare ValueError
                raise ConfigurationError(
                    f"Invalid {self.provider.upper()} configuration: {exc}", user_supplied=True
                ) from exc
        return self._client

    def object_url(self, key: str) -> str:
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{key}"

    def key_for(self, location: str) -> tuple[str, str]:
        """Return (bucket, key) of a location produced by `object_url`."""
        if location.startswith("s3://"):
            try:
                return parse_s3_uri(location)
            except ValueError as exc:
                raise NotFoundError(str(exc)) from exc
        parsed = urlparse(location)
        host = parsed.hostname or ""
        bucket = host.split(".s3", 1)[0] or self.bucket
        key = unquote(parsed.path.lstrip("/"))
        if not key:
            raise NotFoundError(f"Location has no object key: {location}")
        return bucket, key

    def _put(self, local_path: Path, key: str) -> str:
        self._logger.info("Uploading %s -> %s/%s", local_path, self.bucket, key)
        try:
            self.client().upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": CONTENT_TYPE},
            )
        except (ClientError, BotoCoreError, Boto3Error, OSError) as exc:
            raise _map_error(exc, "Upload") from exc
        return self.object_url(key)

    def _probe(self) -> str:
        try:
            self.client().head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise _map_error(exc, "Connection test") from exc
        return "Successfully connected to S3 bucket"

    def download(self, location: str, destination: Path) -> Path:
        bucket, key = self.key_for(location)
        destination.parent.mkdir(parents=True, exist_ok=True)
        self._logger.info("Downloading %s/%s -> %s", bucket, key, destination)
        try:
            self.client().download_file(bucket, key, str(destination))
        except (ClientError, BotoCoreError, Boto3Error, OSError) as exc:
            raise _map_error(exc, "Download") from exc
        return destination


class R2Storage(S3Storage):
    """Cloudflare R2 through its S3-compatible endpoint (no region)."""

    provider = "r2"

    def __init__(self, config: R2Config, *, client: Optional[Any] = None) -> None:  # type: ignore[override]
        CloudStorage.__init__(self)
        self.config = config  # type: ignore[assignment]
        self._client = client

    @property
    def bucket(self) -> str:
        return self.config.bucket_name  # type: ignore[attr-defined]

    @property
    def endpoint(self) -> str:
        return f"https://{self.config.account_id}.r2.cloudflarestorage.com"  # type: ignore[attr-defined]

    @classmethod
    def owns(cls, location: str) -> bool:
        host = urlparse(location).hostname or ""
        return location.startswith("https://") and host.endswith(".r2.cloudflarestorage.com")

    def _client_kwargs(self) -> dict:
        return {
            "service_name": "s3",
            "region_name": "auto",
            "endpoint_url": self.endpoint,
            "aws_access_key_id": self.config.access_key_id,
            "aws_secret_access_key": self.config.secret_access_key,
        }

    def object_url(self, key: str) -> str:
        return f"{self.endpoint}/{self.bucket}/{key}"

    def key_for(self, location: str) -> tuple[str, str]:
        path = unquote(urlparse(location).path.lstrip("/"))
        parts = path.split("/", 1)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise NotFoundError(f"Location has no bucket/key: {location}")
        return parts[0], parts[1]

    def _probe(self) -> str:
        super()._probe()
        return "Successfully connected to Cloudflare R2"
