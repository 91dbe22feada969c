from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from routine.core.config import Settings
from routine.core.exceptions import AppError, AtomicityFailure, NotFoundError, ValidationError
from routine.models.class_assignment import WHOLE_CELL_KEY, ClassAssignment, ClassType, LabGroup
from routine.schemas.grid import DAY_NAMES
from routine.schemas.routine import AllocationResult, ClearResult, Conflict, SectionContext, SingleSlotRequest
from routine.services.audit import log_activity
from routine.services.availability import AvailabilityIndex, Probe
from routine.services.calendar import TimeSlotCalendar
from routine.services.planning import AllocationPlan, PlannedAssignment
from routine.services.registry import RoutineRegistry
from routine.services.slot_locks import lock_registry, lock_resource_rows, process_keys, resource_keys

logger = logging.getLogger(__name__)


def class_field_errors(
    class_type: ClassType | None,
    subject_id: str | None,
    teacher_ids: list[str],
    room_id: str | None,
    *,
    prefix: str = "",
) -> dict[str, str]:
    errors: dict[str, str] = {}
    if class_type is None:
        errors[f"{prefix}class_type"] = "Class type is required"
        return errors
    if class_type == ClassType.break_:
        return errors
    if not subject_id:
        errors[f"{prefix}subject_id"] = "Subject is required"
    if not teacher_ids:
        errors[f"{prefix}teacher_ids"] = "At least one teacher must be assigned"
    if not room_id:
        errors[f"{prefix}room_id"] = "Room is required"
    return errors


def cell_label(day_index: int, slot_id: int) -> str:
    day_name = DAY_NAMES[day_index] if 0 <= day_index < len(DAY_NAMES) else f"day {day_index}"
    return f"{day_name} slot {slot_id}"


class SlotAllocator:
    """Validates and commits assignments, and clears single cells or whole sections.

    Every write in the engine goes through :meth:`commit` or :meth:`remove` so the
    locking and all-or-nothing rules live in one place.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings,
        calendar: TimeSlotCalendar,
        availability: AvailabilityIndex,
        registry: RoutineRegistry,
    ) -> None:
        self.db = db
        self.settings = settings
        self.calendar = calendar
        self.availability = availability
        self.registry = registry

    # validation helpers shared with span, lab and elective planners

    def context_errors(self, context: SectionContext) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not self.registry.program_exists(context.program_code):
            errors["program_code"] = f"Unknown program {context.program_code}"
            return errors
        program = self.registry.get_program(context.program_code)
        if context.semester > program.total_semesters:
            errors["semester"] = f"{program.code} has only {program.total_semesters} semesters"
        sections = self.registry.sections_for(context.program_code, context.semester)
        if context.section not in sections:
            errors["section"] = f"Section {context.section} is not one of {', '.join(sections)}"
        return errors

    def day_errors(self, day_index: int) -> dict[str, str]:
        if 0 <= day_index < self.settings.school_days:
            return {}
        return {"day_index": f"Day index must be between 0 and {self.settings.school_days - 1}"}

    def ensure_references(
        self,
        *,
        subject_ids: Iterable[str | None] = (),
        teacher_ids: Iterable[str] = (),
        room_ids: Iterable[str | None] = (),
        prefix: str = "",
    ) -> None:
        errors: dict[str, str] = {}
        missing_subjects = self.registry.missing_subjects(item for item in subject_ids if item)
        if missing_subjects:
            errors[f"{prefix}subject_id"] = f"Unknown subject(s): {', '.join(missing_subjects)}"
        missing_teachers = self.registry.missing_teachers(teacher_ids)
        if missing_teachers:
            errors[f"{prefix}teacher_ids"] = f"Unknown teacher(s): {', '.join(missing_teachers)}"
        missing_rooms = self.registry.missing_rooms(item for item in room_ids if item)
        if missing_rooms:
            errors[f"{prefix}room_id"] = f"Unknown room(s): {', '.join(missing_rooms)}"
        if errors:
            raise ValidationError("Routine request references unknown records", details=errors)

    # planning

    def plan_single(self, context: SectionContext, request: SingleSlotRequest) -> AllocationPlan:
        errors = self.context_errors(context)
        errors.update(self.day_errors(request.day_index))
        errors.update(class_field_errors(request.class_type, request.subject_id, request.teacher_ids, request.room_id))
        if errors:
            raise ValidationError("Invalid routine request", details=errors)
        self.calendar.require_teaching_slot(request.slot_id)

        is_break = request.class_type == ClassType.break_
        if not is_break:
            self.ensure_references(
                subject_ids=[request.subject_id],
                teacher_ids=request.teacher_ids,
                room_ids=[request.room_id],
            )
        item = PlannedAssignment(
            context=context,
            day_index=request.day_index,
            slot_id=request.slot_id,
            class_type=request.class_type,
            subject_id=None if is_break else request.subject_id,
            teacher_ids=[] if is_break else list(request.teacher_ids),
            room_id=None if is_break else request.room_id,
            notes=request.notes,
        )
        return AllocationPlan(operation="single", items=[item], replace_existing=request.replace_existing)

    # cell state

    def cell_occupants(self, context: SectionContext, day_index: int, slot_id: int) -> list[ClassAssignment]:
        return list(
            self.db.execute(
                select(ClassAssignment)
                .where(
                    ClassAssignment.program_code == context.program_code,
                    ClassAssignment.semester == context.semester,
                    ClassAssignment.section == context.section,
                    ClassAssignment.day_index == day_index,
                    ClassAssignment.slot_id == slot_id,
                )
                .order_by(ClassAssignment.cell_key)
            ).scalars()
        )

    def _check_plan_shape(self, plan: AllocationPlan) -> None:
        seen: set[tuple] = set()
        for item in plan.items:
            key = (*item.cell, item.cell_key)
            if key in seen:
                raise ValidationError(
                    "Request places two classes in the same cell",
                    details={"slot_id": f"{cell_label(item.day_index, item.slot_id)} is targeted twice"},
                )
            seen.add(key)

    def _stored_run(self, occupant: ClassAssignment) -> set[int]:
        if not occupant.span_id:
            return {occupant.slot_id}
        return set(
            self.db.execute(select(ClassAssignment.slot_id).where(ClassAssignment.span_id == occupant.span_id)).scalars()
        )

    def _check_half_runs(self, plan: AllocationPlan, halves: list[tuple[PlannedAssignment, ClassAssignment]]) -> None:
        planned_runs: dict[str, set[int]] = {}
        for item in plan.items:
            if item.span_id:
                planned_runs.setdefault(item.span_id, set()).add(item.slot_id)
        for item, other in halves:
            run = planned_runs[item.span_id] if item.span_id else {item.slot_id}
            other_run = self._stored_run(other)
            if run != other_run:
                raise ValidationError(
                    "Lab groups sharing a cell must cover the same slots",
                    details={
                        "slot_ids": (
                            f"Group {other.lab_group.value} in {cell_label(item.day_index, item.slot_id)} "
                            f"runs over slots {sorted(other_run, key=self.calendar.position)}"
                        )
                    },
                )

    def resolve_replacements(self, plan: AllocationPlan) -> list[ClassAssignment]:
        """Return the stored assignments the plan would displace, or raise if it may not."""
        replaced: dict[str, ClassAssignment] = {}
        halves: list[tuple[PlannedAssignment, ClassAssignment]] = []
        for item in plan.items:
            occupants = self.cell_occupants(item.context, item.day_index, item.slot_id)
            clashing = [
                occupant
                for occupant in occupants
                if WHOLE_CELL_KEY in (item.cell_key, occupant.cell_key) or occupant.cell_key == item.cell_key
            ]
            halves.extend((item, occupant) for occupant in occupants if occupant not in clashing)
            if not clashing:
                continue
            where = f"{cell_label(item.day_index, item.slot_id)} of {item.context.label}"
            if not plan.replace_existing:
                raise ValidationError(
                    "Cell already holds a class",
                    details={"slot_id": f"{where} is occupied; clear it first or set replace_existing"},
                )
            for occupant in clashing:
                if occupant.span_id:
                    raise ValidationError(
                        "Cannot replace part of a spanned class",
                        details={"slot_id": f"{where} belongs to span {occupant.span_id}; clear the span group first"},
                    )
                if occupant.elective_group_id:
                    raise ValidationError(
                        "Cannot replace one section of an elective",
                        details={
                            "slot_id": (
                                f"{where} belongs to elective group {occupant.elective_group_id}; "
                                "clear the elective group first"
                            )
                        },
                    )
                replaced[occupant.id] = occupant
                if occupant.lab_pair_id:
                    for partner in occupants:
                        if partner.lab_pair_id == occupant.lab_pair_id:
                            replaced[partner.id] = partner
        self._check_half_runs(plan, [(item, other) for item, other in halves if other.id not in replaced])
        return list(replaced.values())

    # conflicts

    def _probes(self, plan: AllocationPlan) -> list[Probe]:
        return [
            Probe(
                kind=claim.kind,
                resource_id=claim.resource_id,
                day_index=item.day_index,
                slot_id=item.slot_id,
                week_parity=claim.week_parity,
                target_section=item.context.section,
                lab_group=item.lab_group if item.lab_group != LabGroup.ALL else claim_group(claim.week_parity),
            )
            for item in plan.items
            for claim in item.claims()
        ]

    def _conflicts(self, plan: AllocationPlan, replaced: list[ClassAssignment]) -> list[Conflict]:
        return self.availability.check_probes(
            self._probes(plan),
            exclude_assignment_ids=[assignment.id for assignment in replaced],
            exclude_elective_group_id=plan.elective_group_id,
        )

    def check_conflicts(self, plan: AllocationPlan) -> list[Conflict]:
        self._check_plan_shape(plan)
        replaced = self.resolve_replacements(plan)
        return self._conflicts(plan, replaced)

    # writes

    def commit(
        self,
        plan: AllocationPlan,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        self._check_plan_shape(plan)
        self.resolve_replacements(plan)

        with lock_registry().hold(process_keys(plan.items), timeout=self.settings.lock_timeout_seconds):
            try:
                lock_resource_rows(self.db, resource_keys(plan.items))
                replaced = self.resolve_replacements(plan)
                conflicts = self._conflicts(plan, replaced)
            except AppError:
                self.db.rollback()
                raise
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Could not lock resources for %s allocation", plan.operation)
                raise AtomicityFailure(
                    f"Could not lock resources for the {plan.operation} allocation",
                    details={"operation": plan.operation},
                ) from exc

            result = AllocationResult(
                committed=False,
                operation=plan.operation,
                conflicts=conflicts,
                span_ids=list(plan.span_ids),
                lab_pair_id=plan.lab_pair_id,
                elective_group_id=plan.elective_group_id,
            )
            if conflicts and not override_conflicts:
                self.db.rollback()
                logger.info(
                    "%s allocation for %s held back by %d conflict(s)",
                    plan.operation,
                    plan.items[0].context.label,
                    len(conflicts),
                )
                return result

            try:
                for assignment in replaced:
                    self.db.delete(assignment)
                self.db.flush()
                for item in plan.items:
                    self.db.add(item.to_model())
                log_activity(
                    self.db,
                    actor=actor,
                    action=f"routine.allocate.{plan.operation}",
                    entity_type="class_assignment",
                    entity_id=plan.elective_group_id or plan.lab_pair_id or plan.items[0].id,
                    details={
                        "assignment_ids": [item.id for item in plan.items],
                        "replaced_ids": [assignment.id for assignment in replaced],
                        "overridden_conflicts": len(conflicts),
                    },
                )
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Rolled back %s allocation of %d assignment(s)", plan.operation, len(plan.items))
                raise AtomicityFailure(
                    f"The {plan.operation} allocation failed and was rolled back",
                    details={"operation": plan.operation, "assignment_count": len(plan.items)},
                ) from exc

        if conflicts:
            logger.warning(
                "%s allocation for %s committed over %d conflict(s)",
                plan.operation,
                plan.items[0].context.label,
                len(conflicts),
            )
        result.committed = True
        result.overridden = bool(conflicts)
        result.assignment_ids = [item.id for item in plan.items]
        return result

    def remove(
        self,
        assignments: list[ClassAssignment],
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        actor: str | None = None,
    ) -> ClearResult:
        removed_ids = sorted(assignment.id for assignment in assignments)
        try:
            for assignment in assignments:
                self.db.delete(assignment)
            log_activity(
                self.db,
                actor=actor,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details={"assignment_ids": removed_ids},
            )
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            raise NotFoundError(entity_type, entity_id) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Rolled back %s for %s %s", action, entity_type, entity_id)
            raise AtomicityFailure(
                f"Clearing {entity_type} {entity_id} failed and was rolled back",
                details={"assignment_ids": removed_ids},
            ) from exc
        logger.info("%s removed %d assignment(s) for %s %s", action, len(removed_ids), entity_type, entity_id)
        return ClearResult(removed_assignment_ids=removed_ids, removed_count=len(removed_ids))

    def clear_cell(
        self,
        context: SectionContext,
        day_index: int,
        slot_id: int,
        *,
        lab_group: LabGroup | None = None,
        actor: str | None = None,
    ) -> ClearResult:
        occupants = self.cell_occupants(context, day_index, slot_id)
        if lab_group is not None:
            occupants = [occupant for occupant in occupants if occupant.lab_group == lab_group]
        where = f"{context.label}/{day_index}/{slot_id}"
        if not occupants:
            raise NotFoundError("Routine slot", where)
        for occupant in occupants:
            if occupant.span_id:
                raise ValidationError(
                    "Spanned classes are cleared as a whole",
                    details={"slot_id": f"Clear span group {occupant.span_id} instead", "span_id": occupant.span_id},
                )
            if occupant.elective_group_id:
                raise ValidationError(
                    "Electives are cleared across all sections at once",
                    details={
                        "slot_id": f"Clear elective group {occupant.elective_group_id} instead",
                        "elective_group_id": occupant.elective_group_id,
                    },
                )
            if lab_group is not None and occupant.lab_pair_id:
                raise ValidationError(
                    "Both lab groups of a paired lab are cleared together",
                    details={
                        "lab_group": f"Clear lab pair {occupant.lab_pair_id} instead",
                        "lab_pair_id": occupant.lab_pair_id,
                    },
                )
        return self.remove(
            occupants,
            action="routine.clear.slot",
            entity_type="routine_slot",
            entity_id=where,
            actor=actor,
        )

    def clear_section(self, context: SectionContext, *, actor: str | None = None) -> ClearResult:
        assignments = list(
            self.db.execute(
                select(ClassAssignment).where(
                    ClassAssignment.program_code == context.program_code,
                    ClassAssignment.semester == context.semester,
                    ClassAssignment.section == context.section,
                )
            ).scalars()
        )
        if not assignments:
            raise NotFoundError("Routine", context.label)
        elective_groups = {assignment.elective_group_id for assignment in assignments if assignment.elective_group_id}
        if elective_groups:
            known = {assignment.id for assignment in assignments}
            siblings = self.db.execute(
                select(ClassAssignment).where(ClassAssignment.elective_group_id.in_(elective_groups))
            ).scalars()
            assignments.extend(sibling for sibling in siblings if sibling.id not in known)
        return self.remove(
            assignments,
            action="routine.clear.section",
            entity_type="routine",
            entity_id=context.label,
            actor=actor,
        )


def claim_group(week_parity: str | None) -> LabGroup | None:
    if week_parity is None:
        return None
    return LabGroup(week_parity)
