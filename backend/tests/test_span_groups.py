import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from routine.core.exceptions import AtomicityFailure, NotFoundError, ValidationError
from routine.models.class_assignment import ClassAssignment, ClassType, ResourceOccupancy
from routine.schemas.routine import SingleSlotRequest, SpannedRequest
from routine.services import slot_allocator
from routine.services.span_groups import SpanState


def practical_run(seed, slot_ids, **overrides):
    data = {
        "day_index": 2,
        "slot_ids": slot_ids,
        "class_type": ClassType.practical,
        "subject_id": seed.prog_lab,
        "teacher_ids": [seed.t1, seed.t2],
        "room_id": seed.lab1,
    }
    data.update(overrides)
    return SpannedRequest(**data)


def stored(db):
    return db.execute(select(ClassAssignment).order_by(ClassAssignment.slot_id)).scalars().all()


def test_contiguous_span_commits_with_single_master(engine, db, seed, section_ab):
    result = engine.commit(section_ab, practical_run(seed, [2, 3]))

    assert result.committed is True
    assert len(result.span_ids) == 1
    members = stored(db)
    assert [member.slot_id for member in members] == [2, 3]
    assert {member.span_id for member in members} == {result.span_ids[0]}
    masters = [member for member in members if member.span_master]
    assert len(masters) == 1
    assert masters[0].slot_id == 2
    assert masters[0].period_count == 2
    assert engine.spans.verify(result.span_ids[0]) == []


def test_non_contiguous_span_is_rejected_before_any_write(engine, db, seed, section_ab):
    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, practical_run(seed, [2, 4]))

    assert "slot_ids" in exc_info.value.details
    assert stored(db) == []


def test_single_slot_is_not_a_span(engine, seed, section_ab):
    with pytest.raises(ValidationError):
        engine.commit(section_ab, practical_run(seed, [2]))


def test_submission_order_does_not_pick_the_master(engine, db, seed, section_ab):
    engine.commit(section_ab, practical_run(seed, [5, 4, 3]))

    master = next(member for member in stored(db) if member.span_master)
    assert master.slot_id == 3
    assert master.period_count == 3


def test_grid_merges_span_into_master_cell(engine, seed, section_ab):
    result = engine.commit(section_ab, practical_run(seed, [2, 3]))

    grid = engine.grid(section_ab)
    master_cell = grid.cell(2, 2)
    assert master_cell.col_span == 2
    assert master_cell.span_id == result.span_ids[0]
    assert grid.cell(2, 3) is None
    assert grid.cell(2, 4).kind == "empty"


def test_span_is_all_or_nothing_when_blocked(engine, db, seed, section_ab, section_cd):
    engine.commit(
        section_cd,
        SingleSlotRequest(
            day_index=2,
            slot_id=3,
            class_type=ClassType.lecture,
            subject_id=seed.math,
            teacher_ids=[seed.t2],
            room_id=seed.r2,
        ),
    )

    result = engine.commit(section_ab, practical_run(seed, [2, 3]))

    assert result.committed is False
    assert [conflict.slot_id for conflict in result.conflicts] == [3]
    assert [member.section for member in stored(db)] == ["CD"]


def test_clear_span_removes_every_member(engine, db, seed, section_ab):
    result = engine.commit(section_ab, practical_run(seed, [2, 3, 4]))
    span_id = result.span_ids[0]

    with pytest.raises(ValidationError) as exc_info:
        engine.clear_cell(section_ab, 2, 3)
    assert exc_info.value.details["span_id"] == span_id

    cleared = engine.clear_span(span_id)

    assert cleared.removed_count == 3
    assert stored(db) == []
    with pytest.raises(NotFoundError):
        engine.clear_span(span_id)


def test_span_members_cannot_be_replaced_piecemeal(engine, seed, section_ab):
    engine.commit(section_ab, practical_run(seed, [2, 3]))

    with pytest.raises(ValidationError) as exc_info:
        engine.commit(
            section_ab,
            SingleSlotRequest(
                day_index=2,
                slot_id=3,
                class_type=ClassType.lecture,
                subject_id=seed.math,
                teacher_ids=[seed.t3],
                room_id=seed.r1,
                replace_existing=True,
            ),
        )
    assert "span" in exc_info.value.details["slot_id"]


def test_span_lifecycle_states(engine, seed, section_ab):
    manager = engine.spans
    proposal = manager.propose(section_ab, practical_run(seed, [0, 1]))
    assert proposal.state == SpanState.proposed

    with pytest.raises(ValidationError):
        manager.commit(proposal)

    manager.validate(proposal)
    assert proposal.state == SpanState.validated
    assert proposal.ordered_slot_ids == [0, 1]

    manager.commit(proposal)
    assert proposal.state == SpanState.committed

    manager.clear_proposal(proposal)
    assert proposal.state == SpanState.cleared
    assert manager.members(proposal.span_id) == []


def test_failed_write_rolls_back_every_member(engine, db, seed, section_ab, monkeypatch):
    def fail_after_flush(session, **kwargs):
        session.flush()
        raise OperationalError("INSERT INTO activity_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(slot_allocator, "log_activity", fail_after_flush)

    with pytest.raises(AtomicityFailure) as exc_info:
        engine.commit(section_ab, practical_run(seed, [0, 1, 2]))

    assert exc_info.value.details == {"operation": "span", "assignment_count": 3}
    assert stored(db) == []
    assert db.execute(select(ResourceOccupancy)).scalars().all() == []
