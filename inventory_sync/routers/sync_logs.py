"""Sync log API — list batches, inspect one, pause or cancel it."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import to_http_exception
from ..exceptions import SyncError
from ..services import sync_log_service

router = APIRouter(tags=["sync-logs"])


@router.get("/api/sync/logs")
def api_list_logs(
    sync_type: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    if sync_type and sync_type not in sync_log_service.SYNC_TYPES:
        raise HTTPException(400, f"sync_type must be one of: {', '.join(sync_log_service.SYNC_TYPES)}")
    return {"logs": sync_log_service.list_logs(db, sync_type, limit)}


@router.get("/api/sync/logs/{process_id}")
def api_get_log(process_id: str, db: Session = Depends(get_db)):
    try:
        entry = sync_log_service.get_log(db, process_id)
    except SyncError as e:
        raise to_http_exception(e)
    out = sync_log_service.log_to_dict(entry)
    out["details"] = entry.details
    return out


@router.post("/api/sync/logs/{process_id}/cancel")
def api_cancel_log(process_id: str, db: Session = Depends(get_db)):
    try:
        entry = sync_log_service.cancel(db, process_id)
    except SyncError as e:
        raise to_http_exception(e)
    return sync_log_service.log_to_dict(entry)


@router.post("/api/sync/logs/{process_id}/pause")
def api_pause_log(process_id: str, db: Session = Depends(get_db)):
    try:
        entry = sync_log_service.pause(db, process_id)
    except SyncError as e:
        raise to_http_exception(e)
    return sync_log_service.log_to_dict(entry)
