from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.config import Settings
from routine.models.class_assignment import ClassAssignment, LabGroup, ResourceKind, ResourceOccupancy
from routine.schemas.routine import AssignmentOut, Availability, Conflict, DoubleBooking
from routine.services.registry import DisplayNames, RoutineRegistry


@dataclass(frozen=True)
class Probe:
    kind: ResourceKind
    resource_id: str
    day_index: int
    slot_id: int
    week_parity: str | None = None
    target_section: str | None = None
    lab_group: LabGroup | None = None


class AvailabilityIndex:
    """Answers whether a teacher or room is free at a (day, slot).

    Pure reads over the occupancy rows written alongside every assignment.
    """

    def __init__(self, db: Session, settings: Settings, registry: RoutineRegistry) -> None:
        self.db = db
        self.settings = settings
        self.registry = registry

    def _occupants(
        self, kind: ResourceKind, resource_id: str, day_index: int, slot_id: int
    ) -> list[tuple[ResourceOccupancy, ClassAssignment]]:
        rows = self.db.execute(
            select(ResourceOccupancy, ClassAssignment)
            .join(ClassAssignment, ClassAssignment.id == ResourceOccupancy.assignment_id)
            .where(
                ResourceOccupancy.resource_kind == kind,
                ResourceOccupancy.resource_id == resource_id,
                ResourceOccupancy.day_index == day_index,
                ResourceOccupancy.slot_id == slot_id,
            )
            .order_by(ClassAssignment.program_code, ClassAssignment.semester, ClassAssignment.section)
        ).all()
        return [(occupancy, assignment) for occupancy, assignment in rows]

    def _parities_disjoint(self, requested: str | None, stored: str | None) -> bool:
        if not self.settings.alt_weeks_parity_aware:
            return False
        return requested is not None and stored is not None and requested != stored

    def _describe(
        self,
        probe: Probe,
        assignment: ClassAssignment,
        names: DisplayNames,
    ) -> Conflict:
        if probe.kind == ResourceKind.teacher:
            resource_name = names.teachers.get(probe.resource_id)
        else:
            resource_name = names.rooms.get(probe.resource_id)
        subject_name = names.subject_name(assignment.subject_id)
        label = resource_name or probe.resource_id
        return Conflict(
            resource_kind=probe.kind,
            resource_id=probe.resource_id,
            resource_name=resource_name,
            day_index=probe.day_index,
            slot_id=probe.slot_id,
            target_section=probe.target_section,
            lab_group=probe.lab_group,
            conflicting_assignment_id=assignment.id,
            program_code=assignment.program_code,
            semester=assignment.semester,
            section=assignment.section,
            subject_id=assignment.subject_id,
            subject_name=subject_name,
            class_type=assignment.class_type,
            message=(
                f"{probe.kind.value.capitalize()} {label} is already scheduled for "
                f"{subject_name or 'another class'} in {assignment.program_code} "
                f"semester {assignment.semester} section {assignment.section}"
            ),
        )

    def check_probes(
        self,
        probes: Iterable[Probe],
        *,
        exclude_assignment_ids: Iterable[str] = (),
        exclude_elective_group_id: str | None = None,
    ) -> list[Conflict]:
        excluded = set(exclude_assignment_ids)
        found: list[tuple[Probe, ClassAssignment]] = []
        for probe in probes:
            seen: set[str] = set()
            for occupancy, assignment in self._occupants(probe.kind, probe.resource_id, probe.day_index, probe.slot_id):
                if assignment.id in excluded or assignment.id in seen:
                    continue
                if exclude_elective_group_id and assignment.elective_group_id == exclude_elective_group_id:
                    continue
                if self._parities_disjoint(probe.week_parity, occupancy.week_parity):
                    continue
                seen.add(assignment.id)
                found.append((probe, assignment))
        if not found:
            return []
        names = self.registry.display_names(
            subject_ids=[assignment.subject_id for _, assignment in found if assignment.subject_id],
            teacher_ids=[probe.resource_id for probe, _ in found if probe.kind == ResourceKind.teacher],
            room_ids=[probe.resource_id for probe, _ in found if probe.kind == ResourceKind.room],
        )
        return [self._describe(probe, assignment, names) for probe, assignment in found]

    def is_available(
        self,
        resource_kind: ResourceKind,
        resource_id: str,
        day_index: int,
        slot_id: int,
        *,
        exclude_elective_group_id: str | None = None,
        exclude_assignment_ids: Iterable[str] = (),
        week_parity: str | None = None,
    ) -> Availability:
        probe = Probe(resource_kind, resource_id, day_index, slot_id, week_parity)
        conflicts = self.check_probes(
            [probe],
            exclude_assignment_ids=exclude_assignment_ids,
            exclude_elective_group_id=exclude_elective_group_id,
        )
        return Availability(
            resource_kind=resource_kind,
            resource_id=resource_id,
            day_index=day_index,
            slot_id=slot_id,
            available=not conflicts,
            conflicts=conflicts,
        )

    def _busy_ids(self, kind: ResourceKind, day_index: int, slot_id: int) -> set[str]:
        return set(
            self.db.execute(
                select(ResourceOccupancy.resource_id).where(
                    ResourceOccupancy.resource_kind == kind,
                    ResourceOccupancy.day_index == day_index,
                    ResourceOccupancy.slot_id == slot_id,
                )
            ).scalars().all()
        )

    def free_teachers(self, day_index: int, slot_id: int, *, exclude: Iterable[str] = ()) -> list[str]:
        skipped = self._busy_ids(ResourceKind.teacher, day_index, slot_id) | set(exclude)
        return [teacher_id for teacher_id in self.registry.active_teacher_ids() if teacher_id not in skipped]

    def free_rooms(self, day_index: int, slot_id: int, *, exclude: Iterable[str] = ()) -> list[str]:
        skipped = self._busy_ids(ResourceKind.room, day_index, slot_id) | set(exclude)
        return [room_id for room_id in self.registry.active_room_ids() if room_id not in skipped]

    def double_bookings(self, resource_kind: ResourceKind, resource_id: str) -> list[DoubleBooking]:
        """Cells where a resource serves more than one logical class, e.g. after an override."""
        rows = self.db.execute(
            select(ResourceOccupancy, ClassAssignment)
            .join(ClassAssignment, ClassAssignment.id == ResourceOccupancy.assignment_id)
            .where(
                ResourceOccupancy.resource_kind == resource_kind,
                ResourceOccupancy.resource_id == resource_id,
            )
            .order_by(ResourceOccupancy.day_index, ResourceOccupancy.slot_id)
        ).all()

        by_cell: dict[tuple[int, int], dict[str, ClassAssignment]] = defaultdict(dict)
        for occupancy, assignment in rows:
            by_cell[(occupancy.day_index, occupancy.slot_id)][assignment.id] = assignment

        bookings: list[DoubleBooking] = []
        for (day_index, slot_id), assignments in sorted(by_cell.items()):
            offerings = {
                assignment.elective_group_id or assignment.lab_pair_id or assignment.id
                for assignment in assignments.values()
            }
            if len(offerings) < 2:
                continue
            bookings.append(
                DoubleBooking(
                    resource_kind=resource_kind,
                    resource_id=resource_id,
                    day_index=day_index,
                    slot_id=slot_id,
                    assignments=[
                        AssignmentOut.model_validate(assignment)
                        for assignment in sorted(assignments.values(), key=lambda item: (item.section, item.cell_key))
                    ],
                )
            )
        return bookings
