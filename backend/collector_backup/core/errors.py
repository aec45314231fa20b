"""Error taxonomy shared by the dump, restore, cloud and scheduling layers.

Every error carries a machine-checkable ``kind`` and the HTTP status the API
renders it with. Subprocess errors also carry the captured stderr text.
"""

from __future__ import annotations

from typing import Optional


class BackupSystemError(Exception):
    """Base class for all errors raised by the backup subsystem."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"success": False, "error": self.message, "error_kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(BackupSystemError):
    """Bad connection string, missing credentials or mismatched provider config."""

    kind = "configuration"

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        missing_fields: Optional[list[str]] = None,
        user_supplied: bool = False,
    ) -> None:
        super().__init__(message, details=details)
        self.missing_fields = list(missing_fields or [])
        # User supplied settings are a client error, server env is not
        if user_supplied:
            self.status_code = 400

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.missing_fields:
            payload["missing_fields"] = self.missing_fields
        return payload


class NotFoundError(BackupSystemError):
    """Referenced backup record or backup file is absent."""

    kind = "not_found"
    status_code = 404


class OperationInProgressError(BackupSystemError):
    """Another destructive operation already holds the database lock."""

    kind = "operation_in_progress"
    status_code = 409


class CloudStorageError(BackupSystemError):
    kind = "cloud"


class TransportError(CloudStorageError):
    """Network or authentication failure while talking to a cloud backend."""

    kind = "transport"
    status_code = 502


class ProviderError(CloudStorageError):
    """The cloud backend rejected the request (e.g. bucket not found)."""

    kind = "provider"
    status_code = 502


class SubprocessError(BackupSystemError):
    """Failure of an external pg_dump / psql invocation."""

    kind = "subprocess"

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        returncode: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details=details or (stderr.strip() or None))
        self.stderr = stderr
        self.returncode = returncode


class ExecutableNotFoundError(SubprocessError):
    kind = "executable_not_found"


class ProcessFailedError(SubprocessError):
    kind = "nonzero_exit"


class ProcessTimeoutError(SubprocessError):
    kind = "timeout"


class OutputLimitExceededError(SubprocessError):
    kind = "output_limit"


class DumpError(SubprocessError):
    kind = "dump"


class RestoreError(SubprocessError):
    kind = "restore"


class DumpExecutableNotFound(DumpError, ExecutableNotFoundError):
    kind = "executable_not_found"


class DumpProcessFailed(DumpError, ProcessFailedError):
    kind = "nonzero_exit"


class DumpTimeout(DumpError, ProcessTimeoutError):
    kind = "timeout"


class DumpOutputLimitExceeded(DumpError, OutputLimitExceededError):
    kind = "output_limit"


class EmptyDumpError(DumpError):
    kind = "empty_output"


class RestoreExecutableNotFound(RestoreError, ExecutableNotFoundError):
    kind = "executable_not_found"


class RestoreProcessFailed(RestoreError, ProcessFailedError):
    kind = "nonzero_exit"


class RestoreTimeout(RestoreError, ProcessTimeoutError):
    kind = "timeout"


class RestoreOutputLimitExceeded(RestoreError, OutputLimitExceededError):
    kind = "output_limit"


DUMP_ERRORS: dict[type[SubprocessError], type[DumpError]] = {
    ExecutableNotFoundError: DumpExecutableNotFound,
    ProcessFailedError: DumpProcessFailed,
    ProcessTimeoutError: DumpTimeout,
    OutputLimitExceededError: DumpOutputLimitExceeded,
}

RESTORE_ERRORS: dict[type[SubprocessError], type[RestoreError]] = {
    ExecutableNotFoundError: RestoreExecutableNotFound,
    ProcessFailedError: RestoreProcessFailed,
    ProcessTimeoutError: RestoreTimeout,
    OutputLimitExceededError: RestoreOutputLimitExceeded,
}


class RestoreCancelled(BackupSystemError):
    """Operator cancelled a restore before the schema reset."""

    kind = "cancelled"
    status_code = 409
