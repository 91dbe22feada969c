from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from routine.models.class_assignment import ClassType, LabGroup
from routine.schemas.time_slot import TimeSlotOut

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class GroupView(BaseModel):
    lab_group: LabGroup | None = None
    subject_id: str | None = None
    subject_code: str | None = None
    subject_name: str | None = None
    teacher_ids: list[str] = Field(default_factory=list)
    teacher_names: list[str] = Field(default_factory=list)
    room_id: str | None = None
    room_name: str | None = None


class CellView(BaseModel):
    slot_id: int
    kind: Literal["empty", "break", "class"]
    label: str | None = None
    class_type: ClassType | None = None
    col_span: int = 1
    assignment_ids: list[str] = Field(default_factory=list)
    groups: list[GroupView] = Field(default_factory=list)
    span_id: str | None = None
    is_lab_split: bool = False
    alternate_weeks: bool = False
    lab_pair_id: str | None = None
    elective_group_id: str | None = None
    elective_label: str | None = None
    elective_number: int | None = None
    notes: str | None = None


class DayRow(BaseModel):
    day_index: int
    day_name: str
    cells: list[CellView]


class RoutineGridView(BaseModel):
    program_code: str
    semester: int
    section: str
    time_slots: list[TimeSlotOut]
    days: list[DayRow]

    def cell(self, day_index: int, slot_id: int) -> CellView | None:
        """Return the rendered cell, or None when a spanned class covers the slot."""
        for row in self.days:
            if row.day_index != day_index:
                continue
            for cell in row.cells:
                if cell.slot_id == slot_id:
                    return cell
            return None
        return None


class ProgramRoutinesView(BaseModel):
    program_code: str
    routines: list[RoutineGridView]


class ScheduleEntry(BaseModel):
    assignment_id: str
    day_index: int
    slot_id: int
    time_range: str
    period_count: int = 1
    is_spanned: bool = False
    program_code: str
    semester: int
    section: str
    class_type: ClassType
    subject_id: str | None = None
    subject_code: str | None = None
    subject_name: str | None = None
    room_id: str | None = None
    room_name: str | None = None
    teacher_names: list[str] = Field(default_factory=list)
    lab_group: LabGroup | None = None
    week_parity: str | None = None
    elective_label: str | None = None
    notes: str | None = None


class ScheduleLoad(BaseModel):
    total_periods: int
    periods_by_day: dict[int, int]
    periods_by_class_type: dict[str, int]


class ResourceScheduleView(BaseModel):
    resource_kind: str
    resource_id: str
    resource_name: str | None
    days: dict[int, list[ScheduleEntry]]
    load: ScheduleLoad
