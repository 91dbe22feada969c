import pytest
from sqlalchemy import select

from routine.core.exceptions import ConfigurationError, NotFoundError, ValidationError
from routine.models.activity_log import ActivityLog
from routine.models.class_assignment import ClassAssignment, ClassType, ResourceKind, ResourceOccupancy
from routine.schemas.routine import SectionContext, SingleSlotRequest
from routine.services.registry import RoutineRegistry


def lecture(seed, day_index=0, slot_id=0, **overrides):
    data = {
        "day_index": day_index,
        "slot_id": slot_id,
        "class_type": ClassType.lecture,
        "subject_id": seed.math,
        "teacher_ids": [seed.t1],
        "room_id": seed.r1,
    }
    data.update(overrides)
    return SingleSlotRequest(**data)


def test_math101_scenario_allocate_then_clear(engine, seed, section_ab):
    assert engine.grid(section_ab).cell(0, 0).kind == "empty"

    result = engine.commit(section_ab, lecture(seed))

    assert result.committed is True
    assert result.conflicts == []
    assert len(result.assignment_ids) == 1
    cell = engine.grid(section_ab).cell(0, 0)
    assert cell.kind == "class"
    assert cell.label == "MATH101"
    assert cell.class_type == ClassType.lecture
    assert cell.groups[0].teacher_names == ["RKS"]
    assert cell.groups[0].room_name == "Room 101"

    cleared = engine.clear_cell(section_ab, 0, 0)

    assert cleared.removed_count == 1
    assert engine.grid(section_ab).cell(0, 0).kind == "empty"


def test_missing_fields_are_reported_per_field(engine, seed, section_ab):
    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, room_id=None, teacher_ids=[]))
    assert set(exc_info.value.details) == {"room_id", "teacher_ids"}

    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, class_type=None))
    assert "class_type" in exc_info.value.details


def test_unknown_references_and_context_are_rejected(engine, seed, section_ab):
    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, teacher_ids=["ghost"]))
    assert exc_info.value.details["teacher_ids"] == "Unknown teacher(s): ghost"

    with pytest.raises(ValidationError) as exc_info:
        engine.commit(SectionContext(program_code="XYZ", semester=1, section="AB"), lecture(seed))
    assert "program_code" in exc_info.value.details

    with pytest.raises(ValidationError) as exc_info:
        engine.commit(SectionContext(program_code="CSE", semester=1, section="EF"), lecture(seed))
    assert "section" in exc_info.value.details


def test_saturday_is_outside_the_school_week(engine, seed, section_ab):
    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, day_index=6))
    assert "day_index" in exc_info.value.details


def test_validation_failure_writes_nothing(engine, db, seed, section_ab):
    with pytest.raises(ValidationError):
        engine.commit(section_ab, lecture(seed, slot_id=99))
    assert db.execute(select(ClassAssignment)).scalars().all() == []


def test_occupied_cell_requires_replace(engine, db, seed, section_ab):
    engine.commit(section_ab, lecture(seed))

    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, subject_id=seed.physics, teacher_ids=[seed.t2]))
    assert "occupied" in exc_info.value.details["slot_id"]

    result = engine.commit(
        section_ab,
        lecture(seed, subject_id=seed.physics, teacher_ids=[seed.t2], replace_existing=True),
    )

    assert result.committed is True
    stored = db.execute(select(ClassAssignment)).scalars().all()
    assert [item.subject_id for item in stored] == [seed.physics]
    assert engine.is_available(ResourceKind.teacher, seed.t1, 0, 0).available is True


def test_conflict_then_override_round_trip(engine, db, seed, section_ab, section_cd):
    engine.commit(section_ab, lecture(seed, slot_id=1))
    request = lecture(seed, slot_id=1, subject_id=seed.physics, room_id=seed.r2)

    conflicts = engine.check_conflicts(section_cd, request)

    assert len(conflicts) == 1
    assert conflicts[0].resource_kind == ResourceKind.teacher
    assert conflicts[0].resource_name == "RKS"
    assert conflicts[0].section == "AB"
    assert conflicts[0].subject_name == "Mathematics I"

    blocked = engine.commit(section_cd, request)

    assert blocked.committed is False
    assert blocked.assignment_ids == []
    assert len(blocked.conflicts) == 1
    assert engine.grid(section_cd).cell(0, 1).kind == "empty"

    forced = engine.commit(section_cd, request, override_conflicts=True)

    assert forced.committed is True
    assert forced.overridden is True
    availability = engine.is_available(ResourceKind.teacher, seed.t1, 0, 1)
    assert availability.available is False
    assert forced.assignment_ids[0] in {conflict.conflicting_assignment_id for conflict in availability.conflicts}


def test_break_class_claims_no_resources(engine, db, seed, section_ab):
    result = engine.commit(section_ab, lecture(seed, class_type=ClassType.break_, notes="Assembly"))

    assert result.committed is True
    assert db.execute(select(ResourceOccupancy)).scalars().all() == []
    cell = engine.grid(section_ab).cell(0, 0)
    assert cell.kind == "break"
    assert cell.label == "Assembly"


def test_practical_without_lab_split_follows_lecture_rules(engine, seed, section_ab):
    with pytest.raises(ValidationError) as exc_info:
        engine.commit(section_ab, lecture(seed, class_type=ClassType.practical, room_id=None))
    assert "room_id" in exc_info.value.details


def test_clear_missing_cell_is_not_found(engine, section_ab):
    with pytest.raises(NotFoundError):
        engine.clear_cell(section_ab, 0, 0)


def test_clear_section_removes_whole_week(engine, db, seed, section_ab, section_cd):
    engine.commit(section_ab, lecture(seed, slot_id=0))
    engine.commit(section_ab, lecture(seed, day_index=1, slot_id=2))
    engine.commit(section_cd, lecture(seed, slot_id=4, teacher_ids=[seed.t2], room_id=seed.r2))

    result = engine.clear_section(section_ab)

    assert result.removed_count == 2
    remaining = db.execute(select(ClassAssignment)).scalars().all()
    assert [item.section for item in remaining] == ["CD"]
    assert len(db.execute(select(ResourceOccupancy)).scalars().all()) == 2


def test_commits_are_recorded_in_activity_log(engine, db, seed, section_ab):
    engine.commit(section_ab, lecture(seed), actor="scheduler@example.com")

    logs = db.execute(select(ActivityLog)).scalars().all()
    assert [log.action for log in logs] == ["routine.allocate.single"]
    assert logs[0].actor == "scheduler@example.com"


def test_missing_section_catalog_is_a_configuration_error(db, settings):
    registry = RoutineRegistry(db, settings.model_copy(update={"canonical_sections": []}))

    with pytest.raises(ConfigurationError):
        registry.sections_for("CSE", 1)


def test_whole_class_practical_fills_the_whole_cell(engine, db, seed, section_ab):
    result = engine.commit(
        section_ab,
        lecture(seed, slot_id=3, class_type=ClassType.practical, subject_id=seed.prog_lab, room_id=seed.lab1),
    )

    (row,) = db.execute(select(ClassAssignment)).scalars().all()
    assert result.operation == "single"
    assert row.class_type == ClassType.practical
    assert row.cell_key == "-"
    assert row.lab_group is None
    assert row.lab_pair_id is None
