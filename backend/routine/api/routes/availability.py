from fastapi import APIRouter, Depends, Query

from routine.api.deps import get_engine
from routine.models.class_assignment import ResourceKind
from routine.schemas.routine import Availability, DoubleBooking
from routine.services.engine import RoutineEngine

router = APIRouter()


@router.get("/availability/free-teachers", response_model=list[str])
def list_free_teachers(
    day_index: int = Query(ge=0, le=6),
    slot_id: int = Query(),
    engine: RoutineEngine = Depends(get_engine),
) -> list[str]:
    engine.calendar.require_teaching_slot(slot_id)
    return engine.free_teachers(day_index, slot_id)


@router.get("/availability/free-rooms", response_model=list[str])
def list_free_rooms(
    day_index: int = Query(ge=0, le=6),
    slot_id: int = Query(),
    engine: RoutineEngine = Depends(get_engine),
) -> list[str]:
    engine.calendar.require_teaching_slot(slot_id)
    return engine.free_rooms(day_index, slot_id)


@router.get("/availability/{resource_kind}/{resource_id}", response_model=Availability)
def check_availability(
    resource_kind: ResourceKind,
    resource_id: str,
    day_index: int = Query(ge=0, le=6),
    slot_id: int = Query(),
    exclude_elective_group_id: str | None = Query(default=None, max_length=36),
    engine: RoutineEngine = Depends(get_engine),
) -> Availability:
    return engine.is_available(
        resource_kind,
        resource_id,
        day_index,
        slot_id,
        exclude_elective_group_id=exclude_elective_group_id,
    )


@router.get("/availability/{resource_kind}/{resource_id}/double-bookings", response_model=list[DoubleBooking])
def list_double_bookings(
    resource_kind: ResourceKind,
    resource_id: str,
    engine: RoutineEngine = Depends(get_engine),
) -> list[DoubleBooking]:
    return engine.double_bookings(resource_kind, resource_id)
