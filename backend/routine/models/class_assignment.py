from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from routine.db.base import Base


class ClassType(str, Enum):
    lecture = "lecture"
    practical = "practical"
    tutorial = "tutorial"
    break_ = "break"


class LabGroup(str, Enum):
    A = "A"
    B = "B"
    ALL = "ALL"


class LabGroupType(str, Enum):
    group_a = "group_a"
    group_b = "group_b"
    both_groups = "both_groups"
    alt_weeks = "alt_weeks"


class ResourceKind(str, Enum):
    teacher = "teacher"
    room = "room"


# Cell key for assignments that own the whole cell; lab halves use "A"/"B".
WHOLE_CELL_KEY = "-"


class ClassAssignment(Base):
    __tablename__ = "class_assignments"
    __table_args__ = (
        UniqueConstraint(
            "program_code",
            "semester",
            "section",
            "day_index",
            "slot_id",
            "cell_key",
            name="uq_class_assignments_cell",
        ),
        Index("ix_class_assignments_section", "program_code", "semester", "section"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    program_code: Mapped[str] = mapped_column(String(20), nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(20), nullable=False)
    day_index: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_id: Mapped[int] = mapped_column(ForeignKey("time_slots.id", ondelete="RESTRICT"), nullable=False)
    cell_key: Mapped[str] = mapped_column(String(3), nullable=False, default=WHOLE_CELL_KEY)

    class_type: Mapped[ClassType] = mapped_column(
        SAEnum(ClassType, name="class_type", values_callable=lambda members: [item.value for item in members]),
        nullable=False,
    )
    subject_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    teacher_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    room_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    span_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    span_master: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    period_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    lab_group: Mapped[LabGroup | None] = mapped_column(SAEnum(LabGroup, name="lab_group"), nullable=True)
    lab_group_type: Mapped[LabGroupType | None] = mapped_column(
        SAEnum(LabGroupType, name="lab_group_type"), nullable=True
    )
    lab_pair_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    alternate_weeks: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alternate_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    elective_group_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    elective_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    elective_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    elective_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    target_sections: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    occupancies: Mapped[list[ResourceOccupancy]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
    )


class ResourceOccupancy(Base):
    """One teacher or room claimed by an assignment at its day and slot."""

    __tablename__ = "resource_occupancies"
    __table_args__ = (
        Index("ix_resource_occupancies_lookup", "resource_kind", "resource_id", "day_index", "slot_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assignment_id: Mapped[str] = mapped_column(
        ForeignKey("class_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    resource_kind: Mapped[ResourceKind] = mapped_column(SAEnum(ResourceKind, name="resource_kind"), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    day_index: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # "A"/"B" when the resource is only used on that group's weeks.
    week_parity: Mapped[str | None] = mapped_column(String(1), nullable=True)

    assignment: Mapped[ClassAssignment] = relationship(back_populates="occupancies")


class ResourceSlotLock(Base):
    __tablename__ = "resource_slot_locks"
    __table_args__ = (
        UniqueConstraint(
            "resource_kind",
            "resource_id",
            "day_index",
            "slot_id",
            name="uq_resource_slot_locks_key",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    resource_kind: Mapped[ResourceKind] = mapped_column(SAEnum(ResourceKind, name="resource_kind"), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    day_index: Mapped[int] = mapped_column(Integer, nullable=False)
    slot_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
