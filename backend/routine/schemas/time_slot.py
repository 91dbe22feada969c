from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class TimeSlotBase(BaseModel):
    label: str = Field(min_length=1, max_length=100)
    start_time: str
    end_time: str
    is_break: bool = False
    sort_order: int = Field(ge=0, le=1000)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlotBase":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class TimeSlotCreate(TimeSlotBase):
    id: int = Field(ge=0, le=1000)


class TimeSlotUpdate(BaseModel):
    label: str | None = Field(default=None, min_length=1, max_length=100)
    start_time: str | None = None
    end_time: str | None = None
    is_break: bool | None = None
    sort_order: int | None = Field(default=None, ge=0, le=1000)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str | None) -> str | None:
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value


class TimeSlotOut(TimeSlotBase):
    id: int

    model_config = {"from_attributes": True}
