"""Sync log service — batch lifecycle and the status state machine.

Business Rules:
- running -> paused | completed | failed | cancelled
- paused  -> running | cancelled
- completed, failed, cancelled are terminal
- Transitions only happen on explicit calls (operator, scheduler, engine);
  nothing times a batch out in the background
- Rows are never deleted; cancelling keeps partial progress visible

Called by: services/sku_repair_service.py, services/inventory_push_service.py,
           services/inventory_correction_service.py,
           services/duplication_service.py, routers/sync_logs.py
Depends on: models.SyncLog
"""

import logging

from sqlalchemy.orm import Session

from ..exceptions import InvalidSyncTransition, NotFoundError
from ..models import SyncLog
from ..models.base import utcnow

log = logging.getLogger(__name__)

SYNC_TYPES = (
    "sku_repair",
    "inventory_push",
    "inventory_resync",
    "duplication_fix",
    "inventory_duplication_fix",
)

ALLOWED_TRANSITIONS = {
    "running": {"paused", "completed", "failed", "cancelled"},
    "paused": {"running", "cancelled"},
    "completed": set(),
    "failed": set(),
    "cancelled": set(),
}
TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def create_log(db: Session, sync_type: str, *, delivery_id: int | None = None, total_items: int = 0) -> SyncLog:
    """Start a new batch in the running state."""
    if sync_type not in SYNC_TYPES:
        raise ValueError(f"Unknown sync type: {sync_type}")
    entry = SyncLog(
        sync_type=sync_type,
        status="running",
        delivery_id=delivery_id,
        total_items=total_items,
        details={},
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    log.info(f"Sync log {entry.process_id} started ({sync_type})")
    return entry


def get_log(db: Session, process_id: str) -> SyncLog:
    entry = db.query(SyncLog).filter(SyncLog.process_id == process_id).first()
    if not entry:
        raise NotFoundError(f"Sync process {process_id} not found")
    return entry


def list_logs(db: Session, sync_type: str | None = None, limit: int = 50) -> list[dict]:
    q = db.query(SyncLog)
    if sync_type:
        q = q.filter(SyncLog.sync_type == sync_type)
    rows = q.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit).all()
    return [log_to_dict(r) for r in rows]


def transition(db: Session, entry: SyncLog, new_status: str, *, error_message: str | None = None) -> SyncLog:
    """Move a batch to new_status. Terminal states also stamp completed_at."""
    current = entry.status
    if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidSyncTransition(
            f"Sync process {entry.process_id} cannot go from {current} to {new_status}"
        )
    entry.status = new_status
    entry.last_activity_at = utcnow()
    if new_status in TERMINAL_STATUSES:
        entry.completed_at = entry.last_activity_at
    if error_message is not None:
        entry.error_message = error_message[:2000]
    db.commit()
    log.info(f"Sync log {entry.process_id}: {current} -> {new_status}")
    return entry


def cancel(db: Session, process_id: str) -> SyncLog:
    return transition(db, get_log(db, process_id), "cancelled")


def pause(db: Session, process_id: str) -> SyncLog:
    return transition(db, get_log(db, process_id), "paused")


def current_status(db: Session, entry: SyncLog) -> str:
    """Re-read the status so a pause or cancel issued by another request is seen."""
    db.flush()
    db.refresh(entry, attribute_names=["status"])
    return entry.status


def is_cancelled(db: Session, entry: SyncLog) -> bool:
    return current_status(db, entry) == "cancelled"


def finish(db: Session, entry: SyncLog, new_status: str, *, error_message: str | None = None) -> str:
    """Close a run unless an operator already paused or cancelled it.

    Returns the status the log ends up in. Counters set on entry are
    committed either way.
    """
    current = current_status(db, entry)
    if current == "running":
        transition(db, entry, new_status, error_message=error_message)
        return new_status
    log.warning(f"Sync log {entry.process_id} is {current}; leaving it there instead of {new_status}")
    if error_message is not None:
        entry.error_message = error_message[:2000]
    entry.last_activity_at = utcnow()
    db.commit()
    return current


def log_to_dict(entry: SyncLog) -> dict:
    return {
        "process_id": entry.process_id,
        "sync_type": entry.sync_type,
        "status": entry.status,
        "delivery_id": entry.delivery_id,
        "total_items": entry.total_items,
        "processed_items": entry.processed_items,
        "updated_items": entry.updated_items,
        "skipped_items": entry.skipped_items,
        "error_items": entry.error_items,
        "products_scanned": entry.products_scanned,
        "current_cursor": entry.current_cursor,
        "api_calls": entry.api_calls,
        "rate_limit_hits": entry.rate_limit_hits,
        "error_message": entry.error_message,
        "started_at": entry.started_at.isoformat() if entry.started_at else None,
        "completed_at": entry.completed_at.isoformat() if entry.completed_at else None,
        "last_activity_at": entry.last_activity_at.isoformat() if entry.last_activity_at else None,
    }
