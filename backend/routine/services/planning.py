from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace

from routine.models.class_assignment import (
    WHOLE_CELL_KEY,
    ClassAssignment,
    ClassType,
    LabGroup,
    LabGroupType,
    ResourceKind,
    ResourceOccupancy,
)
from routine.schemas.routine import SectionContext


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ResourceClaim:
    kind: ResourceKind
    resource_id: str
    week_parity: str | None = None


@dataclass
class PlannedAssignment:
    context: SectionContext
    day_index: int
    slot_id: int
    class_type: ClassType
    subject_id: str | None = None
    teacher_ids: list[str] = field(default_factory=list)
    room_id: str | None = None
    notes: str | None = None
    cell_key: str = WHOLE_CELL_KEY
    span_id: str | None = None
    span_master: bool = False
    period_count: int | None = None
    lab_group: LabGroup | None = None
    lab_group_type: LabGroupType | None = None
    lab_pair_id: str | None = None
    alternate_weeks: bool = False
    alternate_config: dict | None = None
    elective_group_id: str | None = None
    elective_number: int | None = None
    elective_type: str | None = None
    elective_label: str | None = None
    target_sections: list[str] | None = None
    id: str = field(default_factory=new_id)

    @property
    def cell(self) -> tuple[str, int, str, int, int]:
        return (
            self.context.program_code,
            self.context.semester,
            self.context.section,
            self.day_index,
            self.slot_id,
        )

    def claims(self) -> list[ResourceClaim]:
        if self.class_type == ClassType.break_:
            return []
        parity = LabGroup.A.value if self.alternate_weeks else None
        claims = [ResourceClaim(ResourceKind.teacher, teacher_id, parity) for teacher_id in self.teacher_ids]
        if self.room_id:
            claims.append(ResourceClaim(ResourceKind.room, self.room_id, parity))
        if self.alternate_weeks and self.alternate_config:
            parity_b = LabGroup.B.value
            for teacher_id in self.alternate_config.get("teacher_ids", []):
                claims.append(ResourceClaim(ResourceKind.teacher, teacher_id, parity_b))
            if self.alternate_config.get("room_id"):
                claims.append(ResourceClaim(ResourceKind.room, self.alternate_config["room_id"], parity_b))
        return claims

    def to_model(self) -> ClassAssignment:
        assignment = ClassAssignment(
            id=self.id,
            program_code=self.context.program_code,
            semester=self.context.semester,
            section=self.context.section,
            day_index=self.day_index,
            slot_id=self.slot_id,
            cell_key=self.cell_key,
            class_type=self.class_type,
            subject_id=self.subject_id,
            teacher_ids=list(self.teacher_ids),
            room_id=self.room_id,
            notes=self.notes,
            span_id=self.span_id,
            span_master=self.span_master,
            period_count=self.period_count,
            lab_group=self.lab_group,
            lab_group_type=self.lab_group_type,
            lab_pair_id=self.lab_pair_id,
            alternate_weeks=self.alternate_weeks,
            alternate_config=self.alternate_config,
            elective_group_id=self.elective_group_id,
            elective_number=self.elective_number,
            elective_type=self.elective_type,
            elective_label=self.elective_label,
            target_sections=self.target_sections,
        )
        assignment.occupancies = [
            ResourceOccupancy(
                resource_kind=claim.kind,
                resource_id=claim.resource_id,
                day_index=self.day_index,
                slot_id=self.slot_id,
                week_parity=claim.week_parity,
            )
            for claim in self.claims()
        ]
        return assignment


@dataclass
class AllocationPlan:
    operation: str
    items: list[PlannedAssignment]
    replace_existing: bool = False
    span_ids: list[str] = field(default_factory=list)
    lab_pair_id: str | None = None
    elective_group_id: str | None = None


def spread_over_run(template: PlannedAssignment, ordered_slot_ids: list[int]) -> list[PlannedAssignment]:
    """Copy one planned class onto every slot of a run.

    Runs longer than one slot share a fresh span id; the earliest slot is the master
    and carries the period count.
    """
    if len(ordered_slot_ids) == 1:
        return [replace(template, slot_id=ordered_slot_ids[0], id=new_id())]

    span_id = new_id()
    items: list[PlannedAssignment] = []
    for index, slot_id in enumerate(ordered_slot_ids):
        items.append(
            replace(
                template,
                slot_id=slot_id,
                span_id=span_id,
                span_master=index == 0,
                period_count=len(ordered_slot_ids) if index == 0 else None,
                teacher_ids=list(template.teacher_ids),
                id=new_id(),
            )
        )
    return items
