from __future__ import annotations

from collections import Counter, defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.exceptions import NotFoundError
from routine.models.class_assignment import ClassAssignment, LabGroup, ResourceKind, ResourceOccupancy
from routine.models.room import Room
from routine.models.teacher import Teacher
from routine.schemas.grid import ResourceScheduleView, ScheduleEntry, ScheduleLoad
from routine.services.calendar import TimeSlotCalendar
from routine.services.registry import RoutineRegistry


def _resource_name(db: Session, resource_kind: ResourceKind, resource_id: str) -> str:
    if resource_kind == ResourceKind.teacher:
        teacher = db.get(Teacher, resource_id)
        if teacher is None:
            raise NotFoundError("Teacher", resource_id)
        return teacher.short_name
    room = db.get(Room, resource_id)
    if room is None:
        raise NotFoundError("Room", resource_id)
    return room.name


def _configuration(assignment: ClassAssignment, week_parity: str | None) -> tuple[str | None, list[str], str | None]:
    if assignment.alternate_weeks and week_parity == LabGroup.B.value:
        alternate = assignment.alternate_config or {}
        return alternate.get("subject_id"), list(alternate.get("teacher_ids", [])), alternate.get("room_id")
    return assignment.subject_id, list(assignment.teacher_ids or []), assignment.room_id


def resource_schedule(
    db: Session,
    calendar: TimeSlotCalendar,
    registry: RoutineRegistry,
    resource_kind: ResourceKind,
    resource_id: str,
) -> ResourceScheduleView:
    """Weekly timetable of one teacher or room.

    Spanned classes collapse into one entry at the master slot with the full time
    range; an elective taught to several sections at once is listed once.
    """
    resource_name = _resource_name(db, resource_kind, resource_id)
    rows = db.execute(
        select(ResourceOccupancy, ClassAssignment)
        .join(ClassAssignment, ClassAssignment.id == ResourceOccupancy.assignment_id)
        .where(
            ResourceOccupancy.resource_kind == resource_kind,
            ResourceOccupancy.resource_id == resource_id,
        )
        .order_by(ResourceOccupancy.day_index, ResourceOccupancy.slot_id, ClassAssignment.section)
    ).all()

    span_slots: dict[str, list[int]] = defaultdict(list)
    for _, assignment in rows:
        if assignment.span_id:
            span_slots[assignment.span_id].append(assignment.slot_id)

    names = registry.display_names_for(assignment for _, assignment in rows)
    entries: dict[tuple, ScheduleEntry] = {}
    sections: dict[tuple, list[str]] = defaultdict(list)
    for occupancy, assignment in rows:
        if assignment.span_id and not assignment.span_master:
            continue
        key = (assignment.elective_group_id or assignment.id, assignment.day_index, assignment.slot_id, occupancy.week_parity)
        if assignment.section not in sections[key]:
            sections[key].append(assignment.section)
        if key in entries:
            continue
        slot_ids = span_slots[assignment.span_id] if assignment.span_id else [assignment.slot_id]
        subject_id, teacher_ids, room_id = _configuration(assignment, occupancy.week_parity)
        lab_group = assignment.lab_group
        if assignment.alternate_weeks and occupancy.week_parity:
            lab_group = LabGroup(occupancy.week_parity)
        entries[key] = ScheduleEntry(
            assignment_id=assignment.id,
            day_index=assignment.day_index,
            slot_id=assignment.slot_id,
            time_range=calendar.time_range(slot_ids),
            period_count=assignment.period_count or 1,
            is_spanned=assignment.span_id is not None,
            program_code=assignment.program_code,
            semester=assignment.semester,
            section=assignment.section,
            class_type=assignment.class_type,
            subject_id=subject_id,
            subject_code=names.subject_code(subject_id),
            subject_name=names.subject_name(subject_id),
            room_id=room_id,
            room_name=names.room_name(room_id),
            teacher_names=names.teacher_names(teacher_ids),
            lab_group=lab_group,
            week_parity=occupancy.week_parity,
            elective_label=assignment.elective_label,
            notes=assignment.notes,
        )

    days: dict[int, list[ScheduleEntry]] = defaultdict(list)
    for key, entry in entries.items():
        entry.section = ", ".join(sorted(sections[key]))
        days[entry.day_index].append(entry)
    for day_entries in days.values():
        day_entries.sort(key=lambda item: calendar.position(item.slot_id) if item.slot_id in calendar else item.slot_id)

    # Alternate-week parities of one session count once per week.
    by_day: Counter[int] = Counter()
    by_type: Counter[str] = Counter()
    counted: set[tuple] = set()
    for key, entry in entries.items():
        if key[:3] in counted:
            continue
        counted.add(key[:3])
        by_day[entry.day_index] += entry.period_count
        by_type[entry.class_type.value] += entry.period_count

    return ResourceScheduleView(
        resource_kind=resource_kind.value,
        resource_id=resource_id,
        resource_name=resource_name,
        days=dict(sorted(days.items())),
        load=ScheduleLoad(
            total_periods=sum(by_day.values()),
            periods_by_day=dict(sorted(by_day.items())),
            periods_by_class_type=dict(sorted(by_type.items())),
        ),
    )
