from pathlib import Path

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from collector_backup.cloud import (
    DropboxStorage,
    R2Config,
    R2Storage,
    S3Config,
    S3Storage,
    is_remote_location,
    storage_for_location,
    test_cloud_connection,
    upload_to_cloud,
)
from collector_backup.cloud import s3 as s3_module
from collector_backup.core.errors import ConfigurationError
from collector_backup.schemas.settings import BackupSettings


S3_VALUES = {
    "bucket": "collection-backups",
    "region": "eu-west-1",
    "access_key_id": "AKIAEXAMPLE",
    "secret_access_key": "secret",
}
R2_VALUES = {
    "account_id": "abc123",
    "access_key_id": "r2-key",
    "secret_access_key": "r2-secret",
}


class FakeS3Client:
    def __init__(self, error=None):
        self.error = error
        self.uploads = []
        self.heads = []
        self.downloads = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.error is not None:
            raise self.error
        self.uploads.append((filename, bucket, key, ExtraArgs))

    def head_bucket(self, Bucket):
        if self.error is not None:
            raise self.error
        self.heads.append(Bucket)
        return {}

    def download_file(self, bucket, key, filename):
        if self.error is not None:
            raise self.error
        self.downloads.append((bucket, key))
        Path(filename).write_bytes(b"-- fetched\n")


@pytest.fixture
def fake_boto(monkeypatch):
    state = {"client": FakeS3Client(), "kwargs": []}

    def fake_client(**kwargs):
        state["kwargs"].append(kwargs)
        return state["client"]

    monkeypatch.setattr(s3_module.boto3, "client", fake_client)
    return state


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / "backup-2024-06-15T12-00-00-000Z.sql"
    path.write_text("-- dump\n")
    return path


def _client_error(code, message="denied"):
    return ClientError({"Error": {"Code": code, "Message": message}}, "PutObject")


def test_s3_upload_returns_regional_url(fake_boto, dump_file):
    result = upload_to_cloud("s3", dump_file, dump_file.name, S3_VALUES)

    assert result.success is True
    assert result.url == f"https://collection-backups.s3.eu-west-1.amazonaws.com/backups/{dump_file.name}"
    filename, bucket, key, extra = fake_boto["client"].uploads[0]
    assert (bucket, key) == ("collection-backups", f"backups/{dump_file.name}")
    assert extra == {"ContentType": "application/sql"}
    assert fake_boto["kwargs"][0]["region_name"] == "eu-west-1"


def test_missing_fields_are_reported_before_any_network_call(monkeypatch, dump_file):
    def forbidden(**kwargs):
        raise AssertionError("boto3 client must not be created")

    monkeypatch.setattr(s3_module.boto3, "client", forbidden)

    result = upload_to_cloud("s3", dump_file, dump_file.name, {"bucket": "b", "access_key_id": "  "})

    assert result.success is False
    assert result.error_kind == "configuration"
    assert "region" in result.error and "secret_access_key" in result.error


def test_unknown_provider_and_mismatched_shape_are_configuration_errors(dump_file):
    unknown = upload_to_cloud("ftp", dump_file, dump_file.name, {})
    assert (unknown.success, unknown.error_kind) == (False, "configuration")

    mismatched = upload_to_cloud("dropbox", dump_file, dump_file.name, {"access_token": "t", "bucket": "x"})
    assert (mismatched.success, mismatched.error_kind) == (False, "configuration")

    wrong_type = upload_to_cloud("r2", dump_file, dump_file.name, S3Config(**S3_VALUES))
    assert (wrong_type.success, wrong_type.error_kind) == (False, "configuration")


@pytest.mark.parametrize(
    "error,kind",
    [
        (_client_error("NoSuchBucket", "The specified bucket does not exist"), "provider"),
        (_client_error("InternalError", "We encountered an internal error"), "provider"),
        (_client_error("InvalidAccessKeyId"), "transport"),
        (EndpointConnectionError(endpoint_url="https://s3.eu-west-1.amazonaws.com"), "transport"),
    ],
)
def test_upload_failures_are_reported_not_raised(fake_boto, dump_file, error, kind):
    fake_boto["client"].error = error

    result = upload_to_cloud("s3", dump_file, dump_file.name, S3_VALUES)

    assert result.success is False
    assert result.error_kind == kind
    assert result.url is None


def test_upload_of_missing_file_is_not_found(fake_boto, tmp_path):
    result = upload_to_cloud("s3", tmp_path / "gone.sql", "gone.sql", S3_VALUES)
    assert (result.success, result.error_kind) == (False, "not_found")


def test_connection_probe_uses_head_bucket(fake_boto):
    result = test_cloud_connection("s3", S3_VALUES)
    assert result.success is True
    assert fake_boto["client"].heads == ["collection-backups"]
    assert fake_boto["client"].uploads == []


def test_connection_probe_failure(fake_boto):
    fake_boto["client"].error = _client_error("403", "Forbidden")
    result = test_cloud_connection("s3", S3_VALUES)
    assert (result.success, result.error_kind) == (False, "transport")


def test_connection_probe_lists_missing_fields():
    result = test_cloud_connection("r2", {"account_id": "abc"})
    assert result.success is False
    assert set(result.missing_fields) == {"access_key_id", "secret_access_key"}


def test_malformed_r2_account_is_a_configuration_result(dump_file):
    values = dict(R2_VALUES, account_id="bad account id")

    upload = upload_to_cloud("r2", dump_file, dump_file.name, values)
    assert (upload.success, upload.error_kind) == (False, "configuration")
    assert "Invalid R2 configuration" in upload.error

    check = test_cloud_connection("r2", values)
    assert (check.success, check.error_kind) == (False, "configuration")


def test_malformed_endpoint_on_download_raises_configuration_error(monkeypatch, tmp_path):
    def rejecting_client(**kwargs):
        raise ValueError(f"Invalid endpoint: {kwargs['endpoint_url']}")

    monkeypatch.setattr(s3_module.boto3, "client", rejecting_client)
    storage = R2Storage(R2Config(**dict(R2_VALUES, account_id="bad account id")))

    with pytest.raises(ConfigurationError):
        storage.download("https://x.r2.cloudflarestorage.com/bucket/backups/b.sql", tmp_path / "b.sql")


def test_unexpected_sdk_errors_are_reported_not_raised(fake_boto, dump_file):
    fake_boto["client"].error = RuntimeError("connection pool is closed")

    upload = upload_to_cloud("s3", dump_file, dump_file.name, S3_VALUES)
    assert (upload.success, upload.error_kind) == (False, "transport")
    assert "connection pool is closed" in upload.error

    check = test_cloud_connection("s3", S3_VALUES)
    assert (check.success, check.error_kind) == (False, "transport")


def test_r2_uses_account_endpoint_and_default_bucket(fake_boto, dump_file):
    result = upload_to_cloud("r2", dump_file, dump_file.name, R2_VALUES)

    kwargs = fake_boto["kwargs"][0]
    assert kwargs["endpoint_url"] == "https://abc123.r2.cloudflarestorage.com"
    assert kwargs["region_name"] == "auto"
    assert result.url == f"https://abc123.r2.cloudflarestorage.com/the-collector-backups/backups/{dump_file.name}"


def test_s3_download_parses_bucket_and_key(fake_boto, tmp_path):
    storage = S3Storage(S3Config(**S3_VALUES))
    destination = tmp_path / "fetched.sql"

    storage.download("https://collection-backups.s3.eu-west-1.amazonaws.com/backups/b.sql", destination)

    assert fake_boto["client"].downloads == [("collection-backups", "backups/b.sql")]
    assert destination.read_bytes() == b"-- fetched\n"


def test_storage_for_location_picks_the_owning_backend():
    settings = BackupSettings(
        s3_bucket="collection-backups",
        s3_region="eu-west-1",
        s3_access_key_id="AKIA",
        s3_secret_access_key="secret",
        r2_account_id="abc123",
        r2_access_key_id="k",
        r2_secret_access_key="s",
        dropbox_access_token="tok",
    )
    assert isinstance(
        storage_for_location("https://collection-backups.s3.eu-west-1.amazonaws.com/backups/b.sql", settings),
        S3Storage,
    )
    assert isinstance(storage_for_location("s3://collection-backups/backups/b.sql", settings), S3Storage)
    assert isinstance(
        storage_for_location("https://abc123.r2.cloudflarestorage.com/bucket/backups/b.sql", settings),
        R2Storage,
    )
    assert isinstance(storage_for_location("dropbox:/backups/b.sql", settings), DropboxStorage)
    with pytest.raises(ConfigurationError):
        storage_for_location("https://example.com/backups/b.sql", settings)


def test_storage_for_location_requires_credentials():
    with pytest.raises(ConfigurationError) as exc_info:
        storage_for_location("dropbox:/backups/b.sql", BackupSettings())
    assert exc_info.value.missing_fields == ["access_token"]


@pytest.mark.parametrize(
    "location,expected",
    [
        ("/var/backups/backup.sql", False),
        ("backups/backup.sql", False),
        ("https://bucket.s3.us-east-1.amazonaws.com/backups/b.sql", True),
        ("s3://bucket/backups/b.sql", True),
        ("dropbox:/backups/b.sql", True),
    ],
)
def test_is_remote_location(location, expected):
    assert is_remote_location(location) is expected
