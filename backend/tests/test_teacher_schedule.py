import pytest

from routine.core.exceptions import NotFoundError
from routine.models.class_assignment import ClassType, LabGroupType
from routine.schemas.routine import (
    ElectiveProjectionRequest,
    LabGroupConfig,
    LabSplitRequest,
    SectionContext,
    SingleSlotRequest,
    SpannedRequest,
)


def test_teacher_schedule_merges_spans_and_counts_load(engine, seed, section_ab, section_cd):
    engine.commit(
        section_ab,
        SpannedRequest(
            day_index=1,
            slot_ids=[2, 3],
            class_type=ClassType.practical,
            subject_id=seed.prog_lab,
            teacher_ids=[seed.t1],
            room_id=seed.lab1,
        ),
    )
    engine.commit(
        section_cd,
        SingleSlotRequest(
            day_index=1,
            slot_id=0,
            class_type=ClassType.lecture,
            subject_id=seed.math,
            teacher_ids=[seed.t1],
            room_id=seed.r1,
        ),
    )

    schedule = engine.teacher_schedule(seed.t1)

    assert schedule.resource_name == "RKS"
    entries = schedule.days[1]
    assert [entry.slot_id for entry in entries] == [0, 2]
    spanned = entries[1]
    assert spanned.is_spanned is True
    assert spanned.period_count == 2
    assert spanned.time_range == "08:40-09:45"
    assert spanned.subject_code == "CS102L"
    assert schedule.load.total_periods == 3
    assert schedule.load.periods_by_class_type == {"lecture": 1, "practical": 2}


def test_elective_taught_to_two_sections_is_listed_once(engine, seed):
    engine.commit(
        SectionContext(program_code="CSE", semester=7, section="AB"),
        ElectiveProjectionRequest(
            day_index=2,
            slot_ids=[4],
            subject_id=seed.ai,
            teacher_ids=[seed.t3],
            room_id=seed.r2,
        ),
    )

    schedule = engine.teacher_schedule(seed.t3)

    (entry,) = schedule.days[2]
    assert entry.section == "AB, CD"
    assert entry.elective_label == "Elective 1"
    assert schedule.load.total_periods == 1


def test_room_schedule(engine, seed, section_ab):
    engine.commit(
        section_ab,
        SingleSlotRequest(
            day_index=0,
            slot_id=4,
            class_type=ClassType.tutorial,
            subject_id=seed.physics,
            teacher_ids=[seed.t2],
            room_id=seed.r2,
        ),
    )

    schedule = engine.room_schedule(seed.r2)

    assert schedule.resource_kind == "room"
    assert schedule.days[0][0].teacher_names == ["SDT"]
    assert schedule.days[0][0].time_range == "09:45-10:35"


def test_unknown_teacher_is_not_found(engine):
    with pytest.raises(NotFoundError):
        engine.teacher_schedule("nobody")


def test_alternate_week_lab_counts_once_per_week(engine, seed, section_ab):
    engine.commit(
        section_ab,
        LabSplitRequest(
            day_index=3,
            slot_ids=[6],
            lab_group_type=LabGroupType.alt_weeks,
            group_a=LabGroupConfig(subject_id=seed.prog_lab, teacher_ids=[seed.t4], room_id=seed.lab1),
            group_b=LabGroupConfig(subject_id=seed.db_lab, teacher_ids=[seed.t4], room_id=seed.lab2),
        ),
    )

    schedule = engine.teacher_schedule(seed.t4)

    assert sorted(entry.week_parity for entry in schedule.days[3]) == ["A", "B"]
    assert sorted(entry.subject_code for entry in schedule.days[3]) == ["CS102L", "CS204L"]
    assert schedule.load.total_periods == 1
    assert schedule.load.periods_by_day == {3: 1}
