"""Health check API router."""

import logging
import shutil

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collector_backup.core import config
from collector_backup.core.db import get_session

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/ready")
def ready(db: Session = Depends(get_session)):
    """Readiness: the metadata store answers; client tool presence is informational."""
    tools = {
        "pg_dump": shutil.which(config.get_pg_dump_path()) is not None,
        "psql": shutil.which(config.get_psql_path()) is not None,
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("readiness_check_failed | error=%s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "metadata_store": "error", "tools": tools},
        )
    return {"status": "ready", "metadata_store": "ok", "tools": tools}
