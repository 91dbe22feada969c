from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.config import Settings, get_settings
from routine.models.class_assignment import ClassAssignment, LabGroup, ResourceKind
from routine.models.program import ProgramSection
from routine.schemas.grid import ProgramRoutinesView, ResourceScheduleView, RoutineGridView
from routine.schemas.routine import (
    AllocationResult,
    Availability,
    ClearResult,
    Conflict,
    DoubleBooking,
    ElectiveProjectionRequest,
    LabSplitRequest,
    RoutineRequest,
    SectionContext,
    SingleSlotRequest,
    SpannedRequest,
)
from routine.services.availability import AvailabilityIndex
from routine.services.calendar import TimeSlotCalendar
from routine.services.electives import ElectiveProjector
from routine.services.lab_groups import LabGroupSplitter
from routine.services.registry import RoutineRegistry
from routine.services.routine_grid import assemble
from routine.services.slot_allocator import SlotAllocator
from routine.services.span_groups import SpanGroupManager
from routine.services.teacher_schedule import resource_schedule


class RoutineEngine:
    """Entry point for the allocation, clear and read APIs.

    Holds no state of its own between calls; build one per request around the
    request's database session.
    """

    def __init__(self, db: Session, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.registry = RoutineRegistry(db, self.settings)
        self.calendar = TimeSlotCalendar.load(db)
        self.availability = AvailabilityIndex(db, self.settings, self.registry)
        self.allocator = SlotAllocator(db, self.settings, self.calendar, self.availability, self.registry)
        self.spans = SpanGroupManager(db, self.calendar, self.allocator)
        self.labs = LabGroupSplitter(db, self.calendar, self.allocator)
        self.electives = ElectiveProjector(db, self.settings, self.calendar, self.allocator, self.registry)

    # allocation

    def check_conflicts(self, context: SectionContext, request: RoutineRequest) -> list[Conflict]:
        if isinstance(request, SingleSlotRequest):
            return self.allocator.check_conflicts(self.allocator.plan_single(context, request))
        if isinstance(request, SpannedRequest):
            return self.spans.check_conflicts(self.spans.propose(context, request))
        if isinstance(request, LabSplitRequest):
            return self.labs.check_conflicts(context, request)
        if isinstance(request, ElectiveProjectionRequest):
            return self.electives.check_conflicts(context, request)
        raise TypeError(f"Unsupported routine request: {type(request).__name__}")

    def commit(
        self,
        context: SectionContext,
        request: RoutineRequest,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        if isinstance(request, SingleSlotRequest):
            plan = self.allocator.plan_single(context, request)
            return self.allocator.commit(plan, override_conflicts=override_conflicts, actor=actor)
        if isinstance(request, SpannedRequest):
            return self.spans.allocate(context, request, override_conflicts=override_conflicts, actor=actor)
        if isinstance(request, LabSplitRequest):
            return self.labs.allocate(context, request, override_conflicts=override_conflicts, actor=actor)
        if isinstance(request, ElectiveProjectionRequest):
            return self.electives.allocate(context, request, override_conflicts=override_conflicts, actor=actor)
        raise TypeError(f"Unsupported routine request: {type(request).__name__}")

    # clearing

    def clear_cell(
        self,
        context: SectionContext,
        day_index: int,
        slot_id: int,
        *,
        lab_group: LabGroup | None = None,
        actor: str | None = None,
    ) -> ClearResult:
        return self.allocator.clear_cell(context, day_index, slot_id, lab_group=lab_group, actor=actor)

    def clear_section(self, context: SectionContext, *, actor: str | None = None) -> ClearResult:
        return self.allocator.clear_section(context, actor=actor)

    def clear_span(self, span_id: str, *, actor: str | None = None) -> ClearResult:
        return self.spans.clear(span_id, actor=actor)

    def clear_lab_pair(self, lab_pair_id: str, *, actor: str | None = None) -> ClearResult:
        return self.labs.clear_pair(lab_pair_id, actor=actor)

    def clear_elective_group(self, elective_group_id: str, *, actor: str | None = None) -> ClearResult:
        return self.electives.clear_group(elective_group_id, actor=actor)

    # reads

    def is_available(
        self,
        resource_kind: ResourceKind,
        resource_id: str,
        day_index: int,
        slot_id: int,
        *,
        exclude_elective_group_id: str | None = None,
    ) -> Availability:
        return self.availability.is_available(
            resource_kind,
            resource_id,
            day_index,
            slot_id,
            exclude_elective_group_id=exclude_elective_group_id,
        )

    def free_teachers(self, day_index: int, slot_id: int) -> list[str]:
        return self.availability.free_teachers(day_index, slot_id)

    def free_rooms(self, day_index: int, slot_id: int) -> list[str]:
        return self.availability.free_rooms(day_index, slot_id)

    def double_bookings(self, resource_kind: ResourceKind, resource_id: str) -> list[DoubleBooking]:
        return self.availability.double_bookings(resource_kind, resource_id)

    def section_assignments(self, context: SectionContext) -> list[ClassAssignment]:
        return list(
            self.db.execute(
                select(ClassAssignment).where(
                    ClassAssignment.program_code == context.program_code,
                    ClassAssignment.semester == context.semester,
                    ClassAssignment.section == context.section,
                )
            ).scalars()
        )

    def grid(self, context: SectionContext) -> RoutineGridView:
        assignments = self.section_assignments(context)
        names = self.registry.display_names_for(assignments)
        return assemble(context, self.calendar, assignments, names, school_days=self.settings.school_days)

    def program_routines(self, program_code: str) -> ProgramRoutinesView:
        program = self.registry.get_program(program_code)
        registered = self.db.execute(
            select(ProgramSection.semester, ProgramSection.name).where(ProgramSection.program_code == program.code)
        ).all()
        scheduled = self.db.execute(
            select(ClassAssignment.semester, ClassAssignment.section)
            .where(ClassAssignment.program_code == program.code)
            .distinct()
        ).all()
        pairs = sorted({(semester, section) for semester, section in [*registered, *scheduled]})
        return ProgramRoutinesView(
            program_code=program.code,
            routines=[
                self.grid(SectionContext(program_code=program.code, semester=semester, section=section))
                for semester, section in pairs
            ],
        )

    def teacher_schedule(self, teacher_id: str) -> ResourceScheduleView:
        return resource_schedule(self.db, self.calendar, self.registry, ResourceKind.teacher, teacher_id)

    def room_schedule(self, room_id: str) -> ResourceScheduleView:
        return resource_schedule(self.db, self.calendar, self.registry, ResourceKind.room, room_id)
