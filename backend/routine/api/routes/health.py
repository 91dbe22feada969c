from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from routine.api.deps import get_db
from routine.models.time_slot import TimeSlot

router = APIRouter()

REQUIRED_TABLES = {
    "time_slots",
    "programs",
    "program_sections",
    "subjects",
    "teachers",
    "rooms",
    "class_assignments",
    "resource_occupancies",
    "resource_slot_locks",
    "activity_logs",
}


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready(db: Session = Depends(get_db)) -> JSONResponse:
    db_ok = True
    db_error: str | None = None
    missing_tables: list[str] = []
    slot_count = 0

    try:
        db.execute(text("SELECT 1"))
        table_names = set(inspect(db.get_bind()).get_table_names())
        missing_tables = sorted(REQUIRED_TABLES - table_names)
        if "time_slots" in table_names:
            slot_count = db.execute(select(func.count()).select_from(TimeSlot)).scalar_one()
    except SQLAlchemyError as exc:
        db_ok = False
        db_error = str(exc)

    schema_ok = not missing_tables
    ready = db_ok and schema_ok
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "ok": db_ok,
            "schema_ok": schema_ok,
            "missing_tables": missing_tables,
            "error": db_error,
        },
        "calendar": {"time_slots": slot_count},
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
