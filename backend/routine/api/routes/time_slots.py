from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from routine.api.deps import get_actor, get_db
from routine.core.exceptions import NotFoundError, ValidationError
from routine.models.class_assignment import ClassAssignment
from routine.models.time_slot import TimeSlot
from routine.schemas.time_slot import TimeSlotCreate, TimeSlotOut, TimeSlotUpdate, parse_time_to_minutes
from routine.services.audit import log_activity
from routine.services.calendar import TimeSlotCalendar
from routine.services.span_groups import spans_broken_by

router = APIRouter()


def _scheduled_count(db: Session, slot_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(ClassAssignment).where(ClassAssignment.slot_id == slot_id)
    ).scalar_one()


def _ensure_spans_survive(db: Session, slots: list[TimeSlot]) -> None:
    broken = spans_broken_by(db, TimeSlotCalendar(slots))
    if broken:
        db.rollback()
        raise ValidationError(
            "Change would split spanned classes",
            details={"sort_order": "Spanned classes must stay on consecutive slots", "span_ids": broken},
        )


@router.get("/", response_model=list[TimeSlotOut])
def list_time_slots(db: Session = Depends(get_db)) -> list[TimeSlotOut]:
    return list(db.execute(select(TimeSlot).order_by(TimeSlot.sort_order.asc(), TimeSlot.id.asc())).scalars())


@router.post("/", response_model=TimeSlotOut, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    payload: TimeSlotCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> TimeSlotOut:
    if db.get(TimeSlot, payload.id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Time slot id already exists")
    slot = TimeSlot(**payload.model_dump())
    _ensure_spans_survive(db, [*db.execute(select(TimeSlot)).scalars(), slot])
    db.add(slot)
    log_activity(db, actor=actor, action="time_slot.create", entity_type="time_slot", entity_id=str(slot.id))
    db.commit()
    db.refresh(slot)
    return slot


@router.put("/{slot_id}", response_model=TimeSlotOut)
def update_time_slot(
    slot_id: int,
    payload: TimeSlotUpdate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> TimeSlotOut:
    slot = db.get(TimeSlot, slot_id)
    if slot is None:
        raise NotFoundError("Time slot", str(slot_id))

    data = payload.model_dump(exclude_unset=True)
    start_time = data.get("start_time", slot.start_time)
    end_time = data.get("end_time", slot.end_time)
    if parse_time_to_minutes(end_time) <= parse_time_to_minutes(start_time):
        raise ValidationError("Invalid time range", details={"end_time": "end_time must be after start_time"})
    if data.get("is_break") and not slot.is_break and _scheduled_count(db, slot_id):
        raise ValidationError(
            "Slot still holds classes",
            details={"is_break": f"Clear the classes in slot {slot_id} before turning it into a break"},
        )

    for key, value in data.items():
        setattr(slot, key, value)
    if {"sort_order", "is_break"} & data.keys():
        _ensure_spans_survive(db, list(db.execute(select(TimeSlot)).scalars()))
    if data:
        log_activity(
            db,
            actor=actor,
            action="time_slot.update",
            entity_type="time_slot",
            entity_id=str(slot_id),
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(slot)
    return slot


@router.delete("/{slot_id}")
def delete_time_slot(
    slot_id: int,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    slot = db.get(TimeSlot, slot_id)
    if slot is None:
        raise NotFoundError("Time slot", str(slot_id))
    scheduled = _scheduled_count(db, slot_id)
    if scheduled:
        raise ValidationError(
            "Slot still holds classes",
            details={"slot_id": f"{scheduled} class(es) are scheduled in slot {slot_id}"},
        )
    db.delete(slot)
    log_activity(db, actor=actor, action="time_slot.delete", entity_type="time_slot", entity_id=str(slot_id))
    db.commit()
    return {"success": True}
