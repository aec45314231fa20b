"""Cloud storage backends for backup artifacts (S3, Cloudflare R2, Dropbox)."""

from .adapter import (
    get_storage,
    is_remote_location,
    storage_for_location,
    storage_from_settings,
    test_cloud_connection,
    upload_to_cloud,
)
from .base import CloudStorage, ConnectionTestResult, UploadResult
from .configs import DropboxConfig, R2Config, S3Config, build_cloud_config, cloud_config_from_settings
from .dropbox import DropboxStorage
from .s3 import R2Storage, S3Storage

__all__ = [
    "CloudStorage",
    "ConnectionTestResult",
    "DropboxConfig",
    "DropboxStorage",
    "R2Config",
    "R2Storage",
    "S3Config",
    "S3Storage",
    "UploadResult",
    "build_cloud_config",
    "cloud_config_from_settings",
    "get_storage",
    "is_remote_location",
    "storage_for_location",
    "storage_from_settings",
    "test_cloud_connection",
    "upload_to_cloud",
]
