"""Provider credential shapes and their validation.

The three shapes form a tagged union discriminated by `provider`; validation
happens once, before any network call, and reports every missing field.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from collector_backup.core.errors import ConfigurationError
from collector_backup.domain.enums import CloudProvider
from collector_backup.schemas.settings import BackupSettings


DEFAULT_R2_BUCKET = "the-collector-backups"


class _ProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)


class S3Config(_ProviderConfig):
    provider: Literal["s3"] = "s3"
    bucket: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1, repr=False)


class R2Config(_ProviderConfig):
    provider: Literal["r2"] = "r2"
    account_id: str = Field(..., min_length=1)
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1, repr=False)
    bucket_name: str = DEFAULT_R2_BUCKET


class DropboxConfig(_ProviderConfig):
    provider: Literal["dropbox"] = "dropbox"
    access_token: str = Field(..., min_length=1, repr=False)


CloudConfig = Annotated[Union[S3Config, R2Config, DropboxConfig], Field(discriminator="provider")]

_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(CloudConfig)

_CONFIG_CLASSES: dict[CloudProvider, type[_ProviderConfig]] = {
    CloudProvider.S3: S3Config,
    CloudProvider.R2: R2Config,
    CloudProvider.DROPBOX: DropboxConfig,
}


def parse_provider(provider: Any) -> CloudProvider:
    try:
        value = CloudProvider(provider)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid cloud provider: {provider!r}", user_supplied=True) from exc
    if value == CloudProvider.NONE:
        raise ConfigurationError("No cloud provider configured", user_supplied=True)
    return value


def build_cloud_config(provider: Any, values: Mapping[str, Any]) -> Union[S3Config, R2Config, DropboxConfig]:
    """Validate `values` against the credential shape of `provider`.

    Empty strings count as missing; unknown fields for the provider are a
    shape mismatch. Raises ConfigurationError.
    """
    kind = parse_provider(provider)
    config_cls = _CONFIG_CLASSES[kind]
    cleaned = {k: v for k, v in values.items() if v not in (None, "") and k != "provider"}
    if kind == CloudProvider.R2 and not cleaned.get("bucket_name"):
        cleaned.pop("bucket_name", None)
    try:
        return _CONFIG_ADAPTER.validate_python({"provider": kind.value, **cleaned})
    except ValidationError as exc:
        missing: list[str] = []
        unexpected: list[str] = []
        for err in exc.errors():
            loc = err.get("loc", ())
            name = str(loc[-1]) if loc else "?"
            if err.get("type") == "missing" or err.get("type") == "string_too_short":
                missing.append(name)
            elif err.get("type") == "extra_forbidden":
                unexpected.append(name)
        if missing:
            message = f"{kind.value.upper()} credentials not configured. Missing required fields: {', '.join(missing)}"
        elif unexpected:
            message = f"Fields not valid for {kind.value.upper()}: {', '.join(unexpected)}"
        else:
            message = f"Invalid {kind.value.upper()} configuration"
        raise ConfigurationError(
            message,
            details=str(exc),
            missing_fields=missing,
            user_supplied=True,
        ) from exc


def settings_values(settings: BackupSettings, provider: CloudProvider) -> dict[str, Optional[str]]:
    """Project the flat settings document onto one provider's credential shape."""
    if provider == CloudProvider.S3:
        return {
            "bucket": settings.s3_bucket,
            "region": settings.s3_region,
            "access_key_id": settings.s3_access_key_id,
            "secret_access_key": settings.s3_secret_access_key,
        }
    if provider == CloudProvider.R2:
        return {
            "account_id": settings.r2_account_id,
            "access_key_id": settings.r2_access_key_id,
            "secret_access_key": settings.r2_secret_access_key,
            "bucket_name": settings.r2_bucket_name,
        }
    if provider == CloudProvider.DROPBOX:
        return {"access_token": settings.dropbox_access_token}
    return {}


def cloud_config_from_settings(
    settings: BackupSettings,
    provider: Optional[CloudProvider] = None,
) -> Union[S3Config, R2Config, DropboxConfig]:
    kind = parse_provider(provider or settings.cloud_provider)
    return build_cloud_config(kind, settings_values(settings, kind))
