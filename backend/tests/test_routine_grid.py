from types import SimpleNamespace

from routine.models.class_assignment import ClassType, LabGroup, LabGroupType
from routine.schemas.routine import LabGroupConfig, LabSplitRequest, SingleSlotRequest, SpannedRequest
from routine.services.calendar import TimeSlotCalendar
from routine.services.registry import DisplayNames
from routine.services.routine_grid import assemble


def make_slot(slot_id, start, end, is_break=False):
    return SimpleNamespace(
        id=slot_id,
        label="Tiffin" if is_break else f"Period {slot_id}",
        start_time=start,
        end_time=end,
        is_break=is_break,
        sort_order=slot_id,
    )


def make_assignment(assignment_id, slot_id, **overrides):
    data = {
        "id": assignment_id,
        "program_code": "CSE",
        "semester": 1,
        "section": "AB",
        "day_index": 0,
        "slot_id": slot_id,
        "class_type": ClassType.lecture,
        "subject_id": "sub-math",
        "teacher_ids": ["t1"],
        "room_id": "r1",
        "notes": None,
        "span_id": None,
        "span_master": False,
        "period_count": None,
        "lab_group": None,
        "lab_pair_id": None,
        "alternate_weeks": False,
        "alternate_config": None,
        "elective_group_id": None,
        "elective_label": None,
        "elective_number": None,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


CALENDAR = TimeSlotCalendar(
    [
        make_slot(0, "10:00", "10:45"),
        make_slot(1, "10:45", "11:30"),
        make_slot(2, "11:30", "12:00", is_break=True),
        make_slot(3, "12:00", "12:45"),
    ]
)


def test_break_slot_renders_as_break_even_with_stored_data(section_ab):
    stray = make_assignment("a1", 2)

    grid = assemble(section_ab, CALENDAR, [stray], school_days=1)

    cell = grid.cell(0, 2)
    assert cell.kind == "break"
    assert cell.label == "Tiffin"
    assert cell.assignment_ids == []


def test_lab_halves_merge_with_group_a_first(section_ab):
    names = DisplayNames(
        subjects={"sub-a": ("LAB-A", "Lab A"), "sub-b": ("LAB-B", "Lab B")},
        teachers={"t1": "RKS", "t2": "SDT"},
        rooms={"lab1": "Lab 1", "lab2": "Lab 2"},
    )
    half_b = make_assignment("b", 0, lab_group=LabGroup.B, subject_id="sub-b", teacher_ids=["t2"], room_id="lab2")
    half_a = make_assignment("a", 0, lab_group=LabGroup.A, subject_id="sub-a", room_id="lab1")

    cell = assemble(section_ab, CALENDAR, [half_b, half_a], names, school_days=1).cell(0, 0)

    assert cell.assignment_ids == ["a", "b"]
    assert [group.teacher_names for group in cell.groups] == [["RKS"], ["SDT"]]
    assert [group.room_name for group in cell.groups] == ["Lab 1", "Lab 2"]
    assert cell.is_lab_split is True


def test_span_members_are_folded_into_master(section_ab):
    master = make_assignment("m", 0, span_id="s1", span_master=True, period_count=2)
    member = make_assignment("n", 1, span_id="s1")

    row = assemble(section_ab, CALENDAR, [member, master], school_days=1).days[0]

    assert [cell.slot_id for cell in row.cells] == [0, 2, 3]
    assert row.cells[0].col_span == 2
    assert row.cells[0].assignment_ids == ["m"]


def test_other_sections_are_ignored(section_ab):
    other = make_assignment("x", 0, section="CD")

    grid = assemble(section_ab, CALENDAR, [other], school_days=2)

    assert grid.cell(0, 0).kind == "empty"
    assert [row.day_name for row in grid.days] == ["Sunday", "Monday"]


def test_assemble_is_idempotent(engine, seed, section_ab):
    engine.commit(
        section_ab,
        SingleSlotRequest(
            day_index=0,
            slot_id=0,
            class_type=ClassType.lecture,
            subject_id=seed.math,
            teacher_ids=[seed.t1],
            room_id=seed.r1,
        ),
    )
    engine.commit(
        section_ab,
        SpannedRequest(
            day_index=0,
            slot_ids=[2, 3],
            class_type=ClassType.tutorial,
            subject_id=seed.physics,
            teacher_ids=[seed.t2],
            room_id=seed.r2,
        ),
    )
    engine.commit(
        section_ab,
        LabSplitRequest(
            day_index=4,
            slot_ids=[6, 7],
            lab_group_type=LabGroupType.both_groups,
            group_a=LabGroupConfig(subject_id=seed.prog_lab, teacher_ids=[seed.t3], room_id=seed.lab1),
            group_b=LabGroupConfig(subject_id=seed.db_lab, teacher_ids=[seed.t4], room_id=seed.lab2),
        ),
    )

    first = engine.grid(section_ab)
    second = engine.grid(section_ab)

    assert first == second
    assert first.model_dump() == second.model_dump()
    assert len(first.days) == 6
    assert len(first.time_slots) == 11
