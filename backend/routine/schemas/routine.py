from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from routine.models.class_assignment import ClassType, LabGroup, LabGroupType, ResourceKind


def _dedupe_ids(values: list[str]) -> list[str]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for value in values:
        item = value.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        cleaned.append(item)
    return cleaned


class SectionContext(BaseModel):
    program_code: str = Field(min_length=1, max_length=20)
    semester: int = Field(ge=1, le=8)
    section: str = Field(min_length=1, max_length=20)

    model_config = {"frozen": True}

    @field_validator("program_code", "section")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    def with_section(self, section: str) -> "SectionContext":
        return SectionContext(program_code=self.program_code, semester=self.semester, section=section)

    @property
    def label(self) -> str:
        return f"{self.program_code}-{self.semester}-{self.section}"


class _ClassFields(BaseModel):
    subject_id: str | None = Field(default=None, max_length=36)
    teacher_ids: list[str] = Field(default_factory=list, max_length=10)
    room_id: str | None = Field(default=None, max_length=36)

    @field_validator("teacher_ids")
    @classmethod
    def clean_teacher_ids(cls, values: list[str]) -> list[str]:
        return _dedupe_ids(values)


class SingleSlotRequest(_ClassFields):
    kind: Literal["single"] = "single"
    day_index: int = Field(ge=0, le=6)
    slot_id: int
    class_type: ClassType | None = None
    notes: str | None = Field(default=None, max_length=500)
    replace_existing: bool = False


class SpannedRequest(_ClassFields):
    kind: Literal["spanned"] = "spanned"
    day_index: int = Field(ge=0, le=6)
    slot_ids: list[int] = Field(min_length=1, max_length=12)
    class_type: ClassType | None = None
    notes: str | None = Field(default=None, max_length=500)
    replace_existing: bool = False


class LabGroupConfig(_ClassFields):
    pass


class LabSplitRequest(BaseModel):
    kind: Literal["lab"] = "lab"
    day_index: int = Field(ge=0, le=6)
    slot_ids: list[int] = Field(min_length=1, max_length=12)
    lab_group_type: LabGroupType | None = None
    group_a: LabGroupConfig | None = None
    group_b: LabGroupConfig | None = None
    notes: str | None = Field(default=None, max_length=500)
    replace_existing: bool = False


class ElectiveProjectionRequest(_ClassFields):
    kind: Literal["elective"] = "elective"
    day_index: int = Field(ge=0, le=6)
    slot_ids: list[int] = Field(min_length=1, max_length=12)
    class_type: ClassType = ClassType.lecture
    elective_number: int | None = None
    elective_type: str | None = Field(default=None, max_length=50)
    elective_label: str | None = Field(default=None, max_length=100)
    target_sections: list[str] | None = Field(default=None, max_length=10)
    notes: str | None = Field(default=None, max_length=500)
    replace_existing: bool = False

    @field_validator("target_sections")
    @classmethod
    def normalize_sections(cls, values: list[str] | None) -> list[str] | None:
        if values is None:
            return None
        return _dedupe_ids([value.upper() for value in values])


RoutineRequest = Annotated[
    Union[SingleSlotRequest, SpannedRequest, LabSplitRequest, ElectiveProjectionRequest],
    Field(discriminator="kind"),
]


class AllocationBody(BaseModel):
    request: RoutineRequest
    override_conflicts: bool = False


class CheckConflictsBody(BaseModel):
    request: RoutineRequest


class Conflict(BaseModel):
    """A teacher or room already busy at the requested cell.

    Conflicts are warnings; a caller may commit anyway with ``override_conflicts``.
    """

    resource_kind: ResourceKind
    resource_id: str
    resource_name: str | None = None
    day_index: int
    slot_id: int
    target_section: str | None = None
    lab_group: LabGroup | None = None
    conflicting_assignment_id: str
    program_code: str
    semester: int
    section: str
    subject_id: str | None = None
    subject_name: str | None = None
    class_type: ClassType
    message: str


class Availability(BaseModel):
    resource_kind: ResourceKind
    resource_id: str
    day_index: int
    slot_id: int
    available: bool
    conflicts: list[Conflict] = Field(default_factory=list)


class AllocationResult(BaseModel):
    committed: bool
    operation: str
    assignment_ids: list[str] = Field(default_factory=list)
    conflicts: list[Conflict] = Field(default_factory=list)
    overridden: bool = False
    span_ids: list[str] = Field(default_factory=list)
    lab_pair_id: str | None = None
    elective_group_id: str | None = None


class ClearResult(BaseModel):
    removed_assignment_ids: list[str]
    removed_count: int


class AssignmentOut(BaseModel):
    id: str
    program_code: str
    semester: int
    section: str
    day_index: int
    slot_id: int
    class_type: ClassType
    subject_id: str | None
    teacher_ids: list[str]
    room_id: str | None
    notes: str | None
    span_id: str | None
    span_master: bool
    period_count: int | None
    lab_group: LabGroup | None
    lab_group_type: LabGroupType | None
    lab_pair_id: str | None
    alternate_weeks: bool
    alternate_config: dict | None
    elective_group_id: str | None
    elective_number: int | None
    elective_type: str | None
    elective_label: str | None
    target_sections: list[str] | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class DoubleBooking(BaseModel):
    resource_kind: ResourceKind
    resource_id: str
    day_index: int
    slot_id: int
    assignments: list[AssignmentOut]


class ConflictReport(BaseModel):
    has_conflicts: bool
    conflicts: list[Conflict] = Field(default_factory=list)
