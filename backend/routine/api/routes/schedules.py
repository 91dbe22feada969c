from fastapi import APIRouter, Depends

from routine.api.deps import get_engine
from routine.schemas.grid import ResourceScheduleView
from routine.services.engine import RoutineEngine

router = APIRouter()


@router.get("/teachers/{teacher_id}/schedule", response_model=ResourceScheduleView)
def get_teacher_schedule(teacher_id: str, engine: RoutineEngine = Depends(get_engine)) -> ResourceScheduleView:
    return engine.teacher_schedule(teacher_id)


@router.get("/rooms/{room_id}/schedule", response_model=ResourceScheduleView)
def get_room_schedule(room_id: str, engine: RoutineEngine = Depends(get_engine)) -> ResourceScheduleView:
    return engine.room_schedule(room_id)
