from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from routine.models.class_assignment import ClassAssignment, ClassType, LabGroup
from routine.schemas.grid import DAY_NAMES, CellView, DayRow, GroupView, RoutineGridView
from routine.schemas.routine import SectionContext
from routine.schemas.time_slot import TimeSlotOut
from routine.services.calendar import TimeSlotCalendar
from routine.services.registry import DisplayNames

_GROUP_ORDER = {LabGroup.A: 1, LabGroup.B: 2}


def _occupant_order(assignment: ClassAssignment) -> tuple[int, str]:
    return (_GROUP_ORDER.get(assignment.lab_group, 0), assignment.id)


def _group_view(
    names: DisplayNames,
    lab_group: LabGroup | None,
    subject_id: str | None,
    teacher_ids: list[str],
    room_id: str | None,
) -> GroupView:
    return GroupView(
        lab_group=lab_group,
        subject_id=subject_id,
        subject_code=names.subject_code(subject_id),
        subject_name=names.subject_name(subject_id),
        teacher_ids=list(teacher_ids),
        teacher_names=names.teacher_names(teacher_ids),
        room_id=room_id,
        room_name=names.room_name(room_id),
    )


def _groups(assignment: ClassAssignment, names: DisplayNames) -> list[GroupView]:
    if assignment.class_type == ClassType.break_:
        return []
    if assignment.alternate_weeks:
        alternate = assignment.alternate_config or {}
        return [
            _group_view(names, LabGroup.A, assignment.subject_id, assignment.teacher_ids or [], assignment.room_id),
            _group_view(
                names,
                LabGroup.B,
                alternate.get("subject_id"),
                alternate.get("teacher_ids", []),
                alternate.get("room_id"),
            ),
        ]
    return [
        _group_view(
            names, assignment.lab_group, assignment.subject_id, assignment.teacher_ids or [], assignment.room_id
        )
    ]


def _label(lead: ClassAssignment, groups: list[GroupView]) -> str | None:
    if lead.class_type == ClassType.break_:
        return lead.notes or "Break"
    if lead.elective_label:
        return lead.elective_label
    parts = [group.subject_code or group.subject_name or group.subject_id for group in groups]
    parts = [part for part in parts if part]
    if not parts:
        return None
    if len(groups) > 1:
        return " / ".join(
            f"{group.lab_group.value}: {part}" if group.lab_group else part
            for group, part in zip(groups, parts)
        )
    return parts[0]


def _class_cell(slot_id: int, occupants: list[ClassAssignment], names: DisplayNames) -> CellView:
    lead = occupants[0]
    groups = [group for occupant in occupants for group in _groups(occupant, names)]
    masters = [occupant for occupant in occupants if occupant.span_master]
    return CellView(
        slot_id=slot_id,
        kind="break" if lead.class_type == ClassType.break_ else "class",
        label=_label(lead, groups),
        class_type=lead.class_type,
        col_span=max((master.period_count or 1 for master in masters), default=1),
        assignment_ids=[occupant.id for occupant in occupants],
        groups=groups,
        span_id=masters[0].span_id if masters else None,
        is_lab_split=any(
            occupant.alternate_weeks or occupant.lab_group in (LabGroup.A, LabGroup.B) for occupant in occupants
        ),
        alternate_weeks=any(occupant.alternate_weeks for occupant in occupants),
        lab_pair_id=next((occupant.lab_pair_id for occupant in occupants if occupant.lab_pair_id), None),
        elective_group_id=lead.elective_group_id,
        elective_label=lead.elective_label,
        elective_number=lead.elective_number,
        notes=next((occupant.notes for occupant in occupants if occupant.notes), None),
    )


def assemble(
    context: SectionContext,
    calendar: TimeSlotCalendar,
    assignments: Iterable[ClassAssignment],
    names: DisplayNames | None = None,
    *,
    school_days: int = 6,
) -> RoutineGridView:
    """Build the day-by-slot grid for one section from stored assignments.

    Break slots always render as breaks. Lab halves sharing a cell merge into one
    composite cell, group A first. Span members other than the master are left out
    of the row; the master's ``col_span`` covers them.
    """
    names = names or DisplayNames()
    by_cell: dict[tuple[int, int], list[ClassAssignment]] = defaultdict(list)
    for assignment in assignments:
        if (assignment.program_code, assignment.semester, assignment.section) != (
            context.program_code,
            context.semester,
            context.section,
        ):
            continue
        by_cell[(assignment.day_index, assignment.slot_id)].append(assignment)

    rows: list[DayRow] = []
    for day_index in range(school_days):
        cells: list[CellView] = []
        for slot in calendar.slots:
            if slot.is_break:
                cells.append(CellView(slot_id=slot.id, kind="break", label=slot.label))
                continue
            occupants = sorted(by_cell.get((day_index, slot.id), []), key=_occupant_order)
            if not occupants:
                cells.append(CellView(slot_id=slot.id, kind="empty"))
                continue
            visible = [occupant for occupant in occupants if not occupant.span_id or occupant.span_master]
            if not visible:
                continue
            cells.append(_class_cell(slot.id, visible, names))
        rows.append(DayRow(day_index=day_index, day_name=DAY_NAMES[day_index], cells=cells))

    return RoutineGridView(
        program_code=context.program_code,
        semester=context.semester,
        section=context.section,
        time_slots=[TimeSlotOut.model_validate(slot) for slot in calendar.slots],
        days=rows,
    )
