from fastapi import APIRouter, Depends, Path, Query, Response, status

from routine.api.deps import get_actor, get_engine, section_context
from routine.models.class_assignment import LabGroup
from routine.schemas.grid import ProgramRoutinesView, RoutineGridView
from routine.schemas.routine import (
    AllocationBody,
    AllocationResult,
    CheckConflictsBody,
    ClearResult,
    ConflictReport,
    SectionContext,
)
from routine.services.engine import RoutineEngine

router = APIRouter()


@router.get("/routines/{program_code}", response_model=ProgramRoutinesView)
def get_program_routines(program_code: str, engine: RoutineEngine = Depends(get_engine)) -> ProgramRoutinesView:
    return engine.program_routines(program_code)


@router.get("/routines/{program_code}/{semester}/{section}", response_model=RoutineGridView)
def get_routine_grid(
    context: SectionContext = Depends(section_context),
    engine: RoutineEngine = Depends(get_engine),
) -> RoutineGridView:
    return engine.grid(context)


@router.post("/routines/{program_code}/{semester}/{section}/check-conflicts", response_model=ConflictReport)
def check_routine_conflicts(
    payload: CheckConflictsBody,
    context: SectionContext = Depends(section_context),
    engine: RoutineEngine = Depends(get_engine),
) -> ConflictReport:
    conflicts = engine.check_conflicts(context, payload.request)
    return ConflictReport(has_conflicts=bool(conflicts), conflicts=conflicts)


@router.post(
    "/routines/{program_code}/{semester}/{section}/assign",
    response_model=AllocationResult,
    status_code=status.HTTP_201_CREATED,
)
def assign_routine_slot(
    payload: AllocationBody,
    response: Response,
    context: SectionContext = Depends(section_context),
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> AllocationResult:
    result = engine.commit(
        context,
        payload.request,
        override_conflicts=payload.override_conflicts,
        actor=actor,
    )
    if not result.committed:
        # Held back by conflicts; resubmit with override_conflicts to proceed.
        response.status_code = status.HTTP_409_CONFLICT
    return result


@router.delete("/routines/spans/{span_id}", response_model=ClearResult)
def clear_span_group(
    span_id: str,
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> ClearResult:
    return engine.clear_span(span_id, actor=actor)


@router.delete("/routines/lab-pairs/{lab_pair_id}", response_model=ClearResult)
def clear_lab_pair(
    lab_pair_id: str,
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> ClearResult:
    return engine.clear_lab_pair(lab_pair_id, actor=actor)


@router.delete("/routines/electives/{elective_group_id}", response_model=ClearResult)
def clear_elective_group(
    elective_group_id: str,
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> ClearResult:
    return engine.clear_elective_group(elective_group_id, actor=actor)


@router.delete("/routines/{program_code}/{semester}/{section}", response_model=ClearResult)
def clear_section_routine(
    context: SectionContext = Depends(section_context),
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> ClearResult:
    return engine.clear_section(context, actor=actor)


@router.delete("/routines/{program_code}/{semester}/{section}/slots/{day_index}/{slot_id}", response_model=ClearResult)
def clear_routine_slot(
    day_index: int = Path(ge=0, le=6),
    slot_id: int = Path(),
    lab_group: LabGroup | None = Query(default=None),
    context: SectionContext = Depends(section_context),
    actor: str | None = Depends(get_actor),
    engine: RoutineEngine = Depends(get_engine),
) -> ClearResult:
    return engine.clear_cell(context, day_index, slot_id, lab_group=lab_group, actor=actor)
