"""Backups API router: list, create, inspect, download, upload, delete, restore."""

import math
from pathlib import Path

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from collector_backup.api.deps import get_backup_service, get_restore_service
from collector_backup.schemas import (
    Backup,
    BackupList,
    CloudUpload,
    CreateBackupResponse,
    Pagination,
    RestoreResponse,
    SortField,
    UploadBackupResponse,
)
from collector_backup.services.backup_service import BackupService
from collector_backup.services.restores import RestoreService


router = APIRouter(prefix="/backups", tags=["backups"])


@router.get("/", response_model=BackupList)
def list_backups(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    svc: BackupService = Depends(get_backup_service),
) -> BackupList:
    """Paginated backup records, newest first by default."""
    items, total = svc.store.list(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    total_pages = math.ceil(total / limit) if total else 0
    return BackupList(
        backups=[Backup.model_validate(item) for item in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            total_count=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        ),
    )


@router.post("/", response_model=CreateBackupResponse, status_code=status.HTTP_201_CREATED)
def create_backup(svc: BackupService = Depends(get_backup_service)) -> CreateBackupResponse:
    """Create a manual backup; a failed cloud upload is reported, not raised."""
    result = svc.create_backup()
    return CreateBackupResponse(
        success=result.success,
        backup=Backup.model_validate(result.backup),
        cloud_upload=CloudUpload(**result.cloud_upload.to_dict()) if result.cloud_upload else None,
    )


@router.get("/{backup_id}", response_model=Backup)
def get_backup(backup_id: str, svc: BackupService = Depends(get_backup_service)) -> Backup:
    return Backup.model_validate(svc.store.get_or_raise(backup_id))


@router.delete("/{backup_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_backup(backup_id: str, svc: BackupService = Depends(get_backup_service)) -> None:
    svc.delete_backup(backup_id)


@router.get("/{backup_id}/download")
def download_backup(backup_id: str, svc: BackupService = Depends(get_backup_service)) -> FileResponse:
    """Stream the backup file, fetching it from the cloud first when remote."""
    record, path, is_temporary = svc.open_artifact(backup_id)
    cleanup = BackgroundTask(Path(path).unlink, missing_ok=True) if is_temporary else None
    return FileResponse(
        path,
        media_type="application/sql",
        filename=record.filename,
        background=cleanup,
    )


@router.post("/{backup_id}/upload", response_model=UploadBackupResponse)
def upload_backup(backup_id: str, svc: BackupService = Depends(get_backup_service)):
    """Upload an existing local backup to the configured cloud provider."""
    record, result = svc.upload_backup(backup_id)
    payload = UploadBackupResponse(
        success=result.success,
        backup=Backup.model_validate(record),
        cloud_upload=CloudUpload(**result.to_dict()),
    )
    if not result.success:
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=payload.model_dump(mode="json"))
    return payload


@router.post("/{backup_id}/restore", response_model=RestoreResponse)
def restore_backup(backup_id: str, svc: RestoreService = Depends(get_restore_service)):
    """Restore a backup over the live database after taking a safety backup.

    A failed attempt answers 500 with the failed step and the safety backup
    filename so the operator can always roll back.
    """
    result = svc.restore(backup_id)
    payload = RestoreResponse(**result.to_dict())
    if not result.success:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload.model_dump(mode="json"))
    return payload
