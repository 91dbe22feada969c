from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.exceptions import NotFoundError, ValidationError
from routine.models.class_assignment import WHOLE_CELL_KEY, ClassAssignment, ClassType, LabGroup, LabGroupType
from routine.schemas.routine import AllocationResult, ClearResult, Conflict, LabGroupConfig, LabSplitRequest, SectionContext
from routine.services.calendar import TimeSlotCalendar
from routine.services.planning import AllocationPlan, PlannedAssignment, new_id, spread_over_run
from routine.services.slot_allocator import SlotAllocator, class_field_errors

logger = logging.getLogger(__name__)

# Which group configs each lab mode needs.
REQUIRED_GROUPS: dict[LabGroupType, tuple[str, ...]] = {
    LabGroupType.group_a: ("group_a",),
    LabGroupType.group_b: ("group_b",),
    LabGroupType.both_groups: ("group_a", "group_b"),
    LabGroupType.alt_weeks: ("group_a", "group_b"),
}


class LabGroupSplitter:
    """Expands one practical session into group A, group B, both, or alternating-week assignments."""

    def __init__(self, db: Session, calendar: TimeSlotCalendar, allocator: SlotAllocator) -> None:
        self.db = db
        self.calendar = calendar
        self.allocator = allocator

    def _group_errors(self, request: LabSplitRequest) -> dict[str, str]:
        errors: dict[str, str] = {}
        if request.lab_group_type is None:
            errors["lab_group_type"] = "Lab group type is required for a practical split"
            return errors
        mode = request.lab_group_type.value
        for name in REQUIRED_GROUPS[request.lab_group_type]:
            config: LabGroupConfig | None = getattr(request, name)
            if config is None:
                group_label = "A" if name == "group_a" else "B"
                errors[name] = f"Group {group_label} configuration is required for {mode}"
                continue
            errors.update(
                class_field_errors(
                    ClassType.practical,
                    config.subject_id,
                    config.teacher_ids,
                    config.room_id,
                    prefix=f"{name}.",
                )
            )
        return errors

    def _template(
        self,
        context: SectionContext,
        request: LabSplitRequest,
        config: LabGroupConfig,
        *,
        lab_group: LabGroup,
        cell_key: str,
        slot_id: int,
    ) -> PlannedAssignment:
        return PlannedAssignment(
            context=context,
            day_index=request.day_index,
            slot_id=slot_id,
            class_type=ClassType.practical,
            subject_id=config.subject_id,
            teacher_ids=list(config.teacher_ids),
            room_id=config.room_id,
            notes=request.notes,
            cell_key=cell_key,
            lab_group=lab_group,
            lab_group_type=request.lab_group_type,
        )

    def plan(self, context: SectionContext, request: LabSplitRequest) -> AllocationPlan:
        errors = self.allocator.context_errors(context)
        errors.update(self.allocator.day_errors(request.day_index))
        errors.update(self._group_errors(request))
        if errors:
            raise ValidationError("Invalid lab request", details=errors)

        ordered = self.calendar.ordered_run(request.slot_ids, field="slot_ids", minimum=1)
        configs = [
            (name, getattr(request, name))
            for name in REQUIRED_GROUPS[request.lab_group_type]
        ]
        for name, config in configs:
            self.allocator.ensure_references(
                subject_ids=[config.subject_id],
                teacher_ids=config.teacher_ids,
                room_ids=[config.room_id],
                prefix=f"{name}.",
            )

        lab_type = request.lab_group_type
        items: list[PlannedAssignment] = []
        lab_pair_id: str | None = None
        if lab_type == LabGroupType.group_a:
            template = self._template(
                context, request, request.group_a, lab_group=LabGroup.A, cell_key=LabGroup.A.value, slot_id=ordered[0]
            )
            items = spread_over_run(template, ordered)
        elif lab_type == LabGroupType.group_b:
            template = self._template(
                context, request, request.group_b, lab_group=LabGroup.B, cell_key=LabGroup.B.value, slot_id=ordered[0]
            )
            items = spread_over_run(template, ordered)
        elif lab_type == LabGroupType.both_groups:
            lab_pair_id = new_id()
            for lab_group, config in ((LabGroup.A, request.group_a), (LabGroup.B, request.group_b)):
                template = self._template(
                    context, request, config, lab_group=lab_group, cell_key=lab_group.value, slot_id=ordered[0]
                )
                template.lab_pair_id = lab_pair_id
                items.extend(spread_over_run(template, ordered))
        else:
            template = self._template(
                context, request, request.group_a, lab_group=LabGroup.ALL, cell_key=WHOLE_CELL_KEY, slot_id=ordered[0]
            )
            template.alternate_weeks = True
            template.alternate_config = {
                "subject_id": request.group_b.subject_id,
                "teacher_ids": list(request.group_b.teacher_ids),
                "room_id": request.group_b.room_id,
            }
            items = spread_over_run(template, ordered)

        span_ids = list(dict.fromkeys(item.span_id for item in items if item.span_id))
        return AllocationPlan(
            operation="lab",
            items=items,
            replace_existing=request.replace_existing,
            span_ids=span_ids,
            lab_pair_id=lab_pair_id,
        )

    def check_conflicts(self, context: SectionContext, request: LabSplitRequest) -> list[Conflict]:
        return self.allocator.check_conflicts(self.plan(context, request))

    def allocate(
        self,
        context: SectionContext,
        request: LabSplitRequest,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        plan = self.plan(context, request)
        result = self.allocator.commit(plan, override_conflicts=override_conflicts, actor=actor)
        if result.committed:
            logger.info(
                "Committed %s lab for %s on day %d across %d slot(s)",
                request.lab_group_type.value,
                context.label,
                request.day_index,
                len(request.slot_ids),
            )
        return result

    def pair_members(self, lab_pair_id: str) -> list[ClassAssignment]:
        return list(
            self.db.execute(
                select(ClassAssignment)
                .where(ClassAssignment.lab_pair_id == lab_pair_id)
                .order_by(ClassAssignment.slot_id, ClassAssignment.cell_key)
            ).scalars()
        )

    def clear_pair(self, lab_pair_id: str, *, actor: str | None = None) -> ClearResult:
        members = self.pair_members(lab_pair_id)
        if not members:
            raise NotFoundError("Lab pair", lab_pair_id)
        return self.allocator.remove(
            members,
            action="routine.clear.lab_pair",
            entity_type="lab_pair",
            entity_id=lab_pair_id,
            actor=actor,
        )
