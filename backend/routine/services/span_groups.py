from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.exceptions import NotFoundError, ValidationError
from routine.models.class_assignment import ClassAssignment, ClassType
from routine.schemas.routine import AllocationResult, ClearResult, Conflict, SectionContext, SpannedRequest
from routine.services.calendar import TimeSlotCalendar
from routine.services.planning import AllocationPlan, PlannedAssignment, spread_over_run
from routine.services.slot_allocator import SlotAllocator, class_field_errors

logger = logging.getLogger(__name__)

MIN_SPAN_LENGTH = 2


def spans_broken_by(db: Session, calendar: TimeSlotCalendar) -> list[str]:
    """Span ids that would no longer sit on one gap-free run, led by their master, under ``calendar``."""
    members: dict[str, list[tuple[int, bool]]] = defaultdict(list)
    rows = db.execute(
        select(ClassAssignment.span_id, ClassAssignment.slot_id, ClassAssignment.span_master).where(
            ClassAssignment.span_id.is_not(None)
        )
    ).all()
    for span_id, slot_id, span_master in rows:
        members[span_id].append((slot_id, span_master))

    broken: list[str] = []
    for span_id, slots in members.items():
        if not all(slot_id in calendar and not calendar.is_break(slot_id) for slot_id, _ in slots):
            broken.append(span_id)
            continue
        ordered = sorted(slots, key=lambda member: calendar.position(member[0]))
        if not calendar.is_contiguous([slot_id for slot_id, _ in ordered]) or not ordered[0][1]:
            broken.append(span_id)
    return sorted(broken)


class SpanState(str, Enum):
    proposed = "proposed"
    validated = "validated"
    committed = "committed"
    cleared = "cleared"


@dataclass
class SpanProposal:
    context: SectionContext
    request: SpannedRequest
    state: SpanState = SpanState.proposed
    ordered_slot_ids: list[int] = field(default_factory=list)
    plan: AllocationPlan | None = None
    result: AllocationResult | None = None

    @property
    def span_id(self) -> str | None:
        if self.plan is None or not self.plan.span_ids:
            return None
        return self.plan.span_ids[0]


class SpanGroupManager:
    """Builds, validates, commits and tears down multi-period classes."""

    def __init__(self, db: Session, calendar: TimeSlotCalendar, allocator: SlotAllocator) -> None:
        self.db = db
        self.calendar = calendar
        self.allocator = allocator

    def ordered_run(self, slot_ids: list[int], *, minimum: int = MIN_SPAN_LENGTH) -> list[int]:
        return self.calendar.ordered_run(slot_ids, field="slot_ids", minimum=minimum)

    def propose(self, context: SectionContext, request: SpannedRequest) -> SpanProposal:
        return SpanProposal(context=context, request=request)

    def validate(self, proposal: SpanProposal) -> SpanProposal:
        if proposal.state != SpanState.proposed:
            raise ValidationError(
                "Span proposal was already validated",
                details={"state": f"Expected {SpanState.proposed.value}, found {proposal.state.value}"},
            )
        request = proposal.request
        errors = self.allocator.context_errors(proposal.context)
        errors.update(self.allocator.day_errors(request.day_index))
        errors.update(class_field_errors(request.class_type, request.subject_id, request.teacher_ids, request.room_id))
        if errors:
            raise ValidationError("Invalid spanned class request", details=errors)

        ordered = self.ordered_run(request.slot_ids)
        is_break = request.class_type == ClassType.break_
        if not is_break:
            self.allocator.ensure_references(
                subject_ids=[request.subject_id],
                teacher_ids=request.teacher_ids,
                room_ids=[request.room_id],
            )
        template = PlannedAssignment(
            context=proposal.context,
            day_index=request.day_index,
            slot_id=ordered[0],
            class_type=request.class_type,
            subject_id=None if is_break else request.subject_id,
            teacher_ids=[] if is_break else list(request.teacher_ids),
            room_id=None if is_break else request.room_id,
            notes=request.notes,
        )
        items = spread_over_run(template, ordered)
        plan = AllocationPlan(
            operation="span",
            items=items,
            replace_existing=request.replace_existing,
            span_ids=[items[0].span_id],
        )
        # Fails here, before any write, when a target cell is taken.
        self.allocator.resolve_replacements(plan)

        proposal.ordered_slot_ids = ordered
        proposal.plan = plan
        proposal.state = SpanState.validated
        return proposal

    def check_conflicts(self, proposal: SpanProposal) -> list[Conflict]:
        if proposal.state == SpanState.proposed:
            self.validate(proposal)
        return self.allocator.check_conflicts(proposal.plan)

    def commit(
        self,
        proposal: SpanProposal,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        if proposal.state != SpanState.validated or proposal.plan is None:
            raise ValidationError(
                "Only validated spans can be committed",
                details={"state": f"Expected {SpanState.validated.value}, found {proposal.state.value}"},
            )
        result = self.allocator.commit(proposal.plan, override_conflicts=override_conflicts, actor=actor)
        proposal.result = result
        if result.committed:
            proposal.state = SpanState.committed
            logger.info(
                "Committed %d-period span %s for %s",
                len(proposal.ordered_slot_ids),
                proposal.span_id,
                proposal.context.label,
            )
        return result

    def allocate(
        self,
        context: SectionContext,
        request: SpannedRequest,
        *,
        override_conflicts: bool = False,
        actor: str | None = None,
    ) -> AllocationResult:
        proposal = self.validate(self.propose(context, request))
        return self.commit(proposal, override_conflicts=override_conflicts, actor=actor)

    def members(self, span_id: str) -> list[ClassAssignment]:
        members = list(
            self.db.execute(select(ClassAssignment).where(ClassAssignment.span_id == span_id)).scalars()
        )
        return sorted(members, key=self._member_order)

    def _member_order(self, member: ClassAssignment) -> tuple[int, int]:
        if member.slot_id in self.calendar:
            return (self.calendar.position(member.slot_id), member.slot_id)
        return (len(self.calendar), member.slot_id)

    def clear(self, span_id: str, *, actor: str | None = None) -> ClearResult:
        members = self.members(span_id)
        if not members:
            raise NotFoundError("Span group", span_id)
        elective_group_id = next((item.elective_group_id for item in members if item.elective_group_id), None)
        if elective_group_id:
            raise ValidationError(
                "Spanned electives are cleared across all sections at once",
                details={"span_id": f"Clear elective group {elective_group_id} instead"},
            )
        lab_pair_id = next((item.lab_pair_id for item in members if item.lab_pair_id), None)
        if lab_pair_id:
            raise ValidationError(
                "Both lab groups of a paired lab are cleared together",
                details={"span_id": f"Clear lab pair {lab_pair_id} instead"},
            )
        return self.allocator.remove(
            members,
            action="routine.clear.span",
            entity_type="span_group",
            entity_id=span_id,
            actor=actor,
        )

    def clear_proposal(self, proposal: SpanProposal, *, actor: str | None = None) -> ClearResult:
        if proposal.state != SpanState.committed or proposal.span_id is None:
            raise ValidationError(
                "Only committed spans can be cleared",
                details={"state": f"Expected {SpanState.committed.value}, found {proposal.state.value}"},
            )
        result = self.clear(proposal.span_id, actor=actor)
        proposal.state = SpanState.cleared
        return result

    def verify(self, span_id: str) -> list[str]:
        """List invariant violations for a stored span; an empty list means it is sound."""
        members = self.members(span_id)
        if not members:
            return [f"Span {span_id} has no members"]
        problems: list[str] = []
        first = members[0]
        if len({(item.program_code, item.semester, item.section, item.day_index) for item in members}) != 1:
            problems.append("Members are spread over more than one section or day")
        if not all(item.slot_id in self.calendar for item in members):
            problems.append("Members reference unknown slots")
        elif not self.calendar.is_contiguous([item.slot_id for item in members]):
            problems.append("Members are not on consecutive slots")
        signature = (first.class_type, first.subject_id, tuple(first.teacher_ids), first.room_id)
        if any((item.class_type, item.subject_id, tuple(item.teacher_ids), item.room_id) != signature for item in members):
            problems.append("Members disagree on subject, teachers, room or class type")
        masters = [item for item in members if item.span_master]
        if len(masters) != 1:
            problems.append(f"Expected exactly one master, found {len(masters)}")
        elif masters[0].period_count != len(members):
            problems.append(f"Master period count {masters[0].period_count} != group size {len(members)}")
        elif masters[0].id != first.id:
            problems.append("Master is not the earliest member")
        return problems
