"""Settings API router for the backup settings document."""

from fastapi import APIRouter, Depends

from collector_backup.api.deps import get_settings_service
from collector_backup.schemas import (
    BackupSettings,
    BackupSettingsResponse,
    ConnectionTestRequest,
    ConnectionTestResponse,
)
from collector_backup.services.settings import SettingsService


router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/backup", response_model=BackupSettingsResponse)
def get_backup_settings(svc: SettingsService = Depends(get_settings_service)) -> BackupSettingsResponse:
    """Current backup settings with secrets masked."""
    settings, updated_at = svc.get()
    return BackupSettingsResponse(settings=settings.masked(), updated_at=updated_at)


@router.put("/backup", response_model=BackupSettingsResponse)
def update_backup_settings(
    payload: BackupSettings,
    svc: SettingsService = Depends(get_settings_service),
) -> BackupSettingsResponse:
    """Replace backup settings. Masked secret values keep the stored secret."""
    settings, updated_at = svc.update(payload)
    return BackupSettingsResponse(settings=settings.masked(), updated_at=updated_at)


@router.post("/backup/test", response_model=ConnectionTestResponse)
def test_backup_connection(
    payload: ConnectionTestRequest,
    svc: SettingsService = Depends(get_settings_service),
) -> ConnectionTestResponse:
    """Probe cloud credentials without uploading anything.

    Fields omitted from the request fall back to the stored settings.
    """
    result = svc.test_connection(payload.provider, payload.model_extra or {})
    return ConnectionTestResponse(**result.to_dict())
