from pydantic import BaseModel, EmailStr, Field, field_validator

from routine.models.room import RoomType


class ProgramBase(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)
    total_semesters: int = Field(default=8, ge=1, le=12)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class ProgramCreate(ProgramBase):
    pass


class ProgramOut(ProgramBase):
    id: str

    model_config = {"from_attributes": True}


class ProgramSectionCreate(BaseModel):
    semester: int = Field(ge=1, le=12)
    name: str = Field(min_length=1, max_length=20)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        return value.strip().upper()


class ProgramSectionOut(ProgramSectionCreate):
    id: str
    program_code: str

    model_config = {"from_attributes": True}


class SubjectBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    weekly_hours: int = Field(default=3, ge=0, le=40)
    has_lab: bool = False
    is_elective: bool = False


class SubjectCreate(SubjectBase):
    pass


class SubjectOut(SubjectBase):
    id: str

    model_config = {"from_attributes": True}


class TeacherBase(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    short_name: str = Field(min_length=1, max_length=20)
    email: EmailStr | None = None
    designation: str = Field(default="Lecturer", min_length=1, max_length=200)
    department: str | None = Field(default=None, max_length=200)


class TeacherCreate(TeacherBase):
    pass


class TeacherOut(TeacherBase):
    id: str

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    building: str | None = Field(default=None, max_length=200)
    capacity: int = Field(default=48, ge=1, le=1000)
    type: RoomType = RoomType.lecture


class RoomCreate(RoomBase):
    pass


class RoomOut(RoomBase):
    id: str

    model_config = {"from_attributes": True}
