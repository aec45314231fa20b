"""Provider selection and the never-raising upload / probe entry points."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Union

from collector_backup.core.errors import BackupSystemError, ConfigurationError
from collector_backup.domain.enums import CloudProvider
from collector_backup.schemas.settings import BackupSettings
from .base import CloudStorage, ConnectionTestResult, UploadResult
from .configs import (
    DropboxConfig,
    R2Config,
    S3Config,
    build_cloud_config,
    cloud_config_from_settings,
    parse_provider,
)
from .dropbox import DropboxStorage
from .s3 import R2Storage, S3Storage


logger = logging.getLogger(__name__)

ProviderConfig = Union[S3Config, R2Config, DropboxConfig]

_STORAGE_CLASSES: dict[CloudProvider, type[CloudStorage]] = {
    CloudProvider.S3: S3Storage,
    CloudProvider.R2: R2Storage,
    CloudProvider.DROPBOX: DropboxStorage,
}

REMOTE_PREFIXES = ("https://", "http://", "s3://", "dropbox:")


def is_remote_location(location: str) -> bool:
    return location.startswith(REMOTE_PREFIXES)


def _coerce_config(provider: CloudProvider, config: Union[ProviderConfig, Mapping[str, Any]]) -> ProviderConfig:
    if isinstance(config, (S3Config, R2Config, DropboxConfig)):
        if config.provider != provider.value:
            raise ConfigurationError(
                f"Configuration for {config.provider!r} cannot be used with provider {provider.value!r}",
                user_supplied=True,
            )
        return config
    return build_cloud_config(provider, config)


def get_storage(provider: Any, config: Union[ProviderConfig, Mapping[str, Any]]) -> CloudStorage:
    """Build the backend for `provider` after validating the config shape.

    Raises ConfigurationError; no network I/O happens here.
    """
    kind = parse_provider(provider)
    validated = _coerce_config(kind, config)
    return _STORAGE_CLASSES[kind](validated)  # type: ignore[arg-type]


def upload_to_cloud(
    provider: Any,
    local_path: str | Path,
    filename: str,
    config: Union[ProviderConfig, Mapping[str, Any]],
) -> UploadResult:
    """Upload a backup file; failures come back as `success=False`."""
    try:
        storage = get_storage(provider, config)
    except BackupSystemError as exc:
        logger.warning("cloud_upload_config_error | provider=%s error=%s", provider, exc)
        return UploadResult(success=False, error=exc.message, error_kind=exc.kind)
    return storage.upload(local_path, filename)


def test_cloud_connection(
    provider: Any,
    config: Union[ProviderConfig, Mapping[str, Any]],
) -> ConnectionTestResult:
    """Probe credentials and reachability; failures come back as `success=False`."""
    try:
        storage = get_storage(provider, config)
    except BackupSystemError as exc:
        logger.warning("cloud_probe_config_error | provider=%s error=%s", provider, exc)
        return ConnectionTestResult(
            success=False,
            error=exc.message,
            error_kind=exc.kind,
            missing_fields=getattr(exc, "missing_fields", None) or None,
        )
    return storage.test_connection()


# pytest would otherwise collect the public name above as a test
test_cloud_connection.__test__ = False  # type: ignore[attr-defined]


def storage_from_settings(settings: BackupSettings) -> CloudStorage:
    """Backend for the provider currently selected in settings."""
    config = cloud_config_from_settings(settings)
    return _STORAGE_CLASSES[CloudProvider(config.provider)](config)  # type: ignore[arg-type]


def storage_for_location(location: str, settings: BackupSettings) -> CloudStorage:
    """Backend that owns a remote `location`, using the stored credentials.

    Raises ConfigurationError when no backend recognises the location or the
    credentials for the owning backend are missing.
    """
    for kind, storage_cls in _STORAGE_CLASSES.items():
        if storage_cls.owns(location):
            config = cloud_config_from_settings(settings, kind)
            return storage_cls(config)  # type: ignore[arg-type]
    raise ConfigurationError(f"No cloud provider recognises backup location {location!r}")
