from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.config import Settings
from routine.core.exceptions import NotFoundError, ValidationError
from routine.models.class_assignment import ClassAssignment, ClassType
from routine.schemas.routine import AllocationResult, ClearResult, Conflict, ElectiveProjectionRequest, SectionContext
from routine.services.calendar import TimeSlotCalendar
from routine.services.planning import AllocationPlan, PlannedAssignment, new_id, spread_over_run
from routine.services.registry import RoutineRegistry
from routine.services.slot_allocator import SlotAllocator, class_field_errors

logger = logging.getLogger(__name__)


class ElectiveProjector:
    """Schedules one elective offering into several section grids at once.

    Every projected assignment shares an ``elective_group_id`` so the offering is
    checked, displayed and cleared as a single unit.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        calendar: TimeSlotCalendar,
        allocator: SlotAllocator,
        registry: RoutineRegistry,
    ) -> None:
        self.db = db
        self.settings = settings
        self.calendar = calendar
        self.allocator = allocator
        self.registry = registry

    def allowed_numbers(self, semester: int) -> list[int]:
        return list(self.settings.elective_semesters.get(semester, []))

    def resolve_number(self, semester: int, elective_number: int | None) -> int:
        allowed = self.allowed_numbers(semester)
        if not allowed:
            semesters = ", ".join(str(item) for item in sorted(self.settings.elective_semesters))
            raise ValidationError(
                "Electives are not offered in this semester",
                details={"semester": f"Electives can only be scheduled in semesters {semesters}"},
            )
        if elective_number is None:
            if len(allowed) == 1:
                return allowed[0]
            raise ValidationError(
                "Elective number is required",
                details={"elective_number": f"Semester {semester} allows elective numbers {allowed}"},
            )
        if elective_number not in allowed:
            raise ValidationError(
                "Invalid elective number for semester",
                details={"elective_number": f"Semester {semester} allows elective numbers {allowed}, got {elective_number}"},
            )
        return elective_number

    def resolve_targets(self, context: SectionContext, target_sections: list[str] | None) -> list[str]:
        sections = self.registry.sections_for(context.program_code, context.semester)
        targets = list(target_sections) if target_sections else list(sections)
        unknown = [section for section in targets if section not in sections]
        if unknown:
            raise ValidationError(
                "Unknown target sections",
                details={"target_sections": f"{', '.join(unknown)} not in {', '.join(sections)}"},
            )
        if context.section not in targets:
            raise ValidationError(
                "Requesting section must be one of the target sections",
                details={"target_sections": f"Section {context.section} is missing from {', '.join(targets)}"},
            )
        return targets

    def plan(self, context: SectionContext, request: ElectiveProjectionRequest) -> AllocationPlan:
        errors = self.allocator.context_errors(context)
        errors.update(self.allocator.day_errors(request.day_index))
        if request.class_type == ClassType.break_:
            errors["class_type"] = "An elective cannot be a break"
        else:
            errors.update(
                class_field_errors(request.class_type, request.subject_id, request.teacher_ids, request.room_id)
            )
        if errors:
            raise ValidationError("Invalid elective request", details=errors)

        elective_number = self.resolve_number(context.semester, request.elective_number)
        targets = self.resolve_targets(context, request.target_sections)
        ordered = self.calendar.ordered_run(request.slot_ids, field="slot_ids", minimum=1)
        self.allocator.ensure_references(
            subject_ids=[request.subject_id],
            teacher_ids=request.teacher_ids,
            room_ids=[request.room_id],
        )

        group_id = new_id()
        label = request.elective_label or f"Elective {elective_number}"
        items: list[PlannedAssignment] = []
        for section in targets:
            template = PlannedAssignment(
                context=context.with_section(section),
                day_index=request.day_index,
                slot_id=ordered[0],
                class_type=request.class_type,
                subject_id=request.subject_id,
                teacher_ids=list(request.teacher_ids),
                room_id=request.room_id,
                notes=request.notes,
                elective_group_id=group_id,
                elective_number=elective_number,
                elective_type=request.elective_type,
                elective_label=label,
                target_sections=list(targets),
            )
            items.extend(spread_over_run(template, ordered))

        return AllocationPlan(
            operation="elective",
            items=items,
            replace_existing=request.replace_existing,
            span_ids=list(dict.fromkeys(item.span_id for item in items if item.span_id)),
            elective_group_id=group_id,
        )

    def check_conflicts(self, context: SectionContext, request: ElectiveProjectionRequest) -> list[Conflict]:
        return self.allocator.check_conflicts(self.plan(context, request))

    def allocate(
        self,
        context: SectionContext,
        request: ElectiveProjectionRequest,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        plan = self.plan(context, request)
        result = self.allocator.commit(plan, override_conflicts=override_conflicts, actor=actor)
        if result.committed:
            logger.info(
                "Projected elective %s into %d section(s) of %s semester %d",
                plan.elective_group_id,
                len({item.context.section for item in plan.items}),
                context.program_code,
                context.semester,
            )
        return result

    def group_members(self, elective_group_id: str) -> list[ClassAssignment]:
        return list(
            self.db.execute(
                select(ClassAssignment)
                .where(ClassAssignment.elective_group_id == elective_group_id)
                .order_by(ClassAssignment.section, ClassAssignment.slot_id)
            ).scalars()
        )

    def clear_group(self, elective_group_id: str, *, actor: str | None = None) -> ClearResult:
        members = self.group_members(elective_group_id)
        if not members:
            raise NotFoundError("Elective group", elective_group_id)
        return self.allocator.remove(
            members,
            action="routine.clear.elective",
            entity_type="elective_group",
            entity_id=elective_group_id,
            actor=actor,
        )
