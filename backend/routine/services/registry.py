from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.config import Settings
from routine.core.exceptions import ConfigurationError, NotFoundError
from routine.models.program import Program, ProgramSection
from routine.models.room import Room
from routine.models.subject import Subject
from routine.models.teacher import Teacher


@dataclass
class DisplayNames:
    subjects: dict[str, tuple[str, str]] = field(default_factory=dict)
    teachers: dict[str, str] = field(default_factory=dict)
    rooms: dict[str, str] = field(default_factory=dict)

    def subject_code(self, subject_id: str | None) -> str | None:
        if subject_id is None or subject_id not in self.subjects:
            return None
        return self.subjects[subject_id][0]

    def subject_name(self, subject_id: str | None) -> str | None:
        if subject_id is None or subject_id not in self.subjects:
            return None
        return self.subjects[subject_id][1]

    def teacher_names(self, teacher_ids: Iterable[str]) -> list[str]:
        return [self.teachers.get(teacher_id, teacher_id) for teacher_id in teacher_ids]

    def room_name(self, room_id: str | None) -> str | None:
        if room_id is None:
            return None
        return self.rooms.get(room_id, room_id)


class RoutineRegistry:
    """Read access to the program, subject, teacher and room registries."""

    def __init__(self, db: Session, settings: Settings) -> None:
        self.db = db
        self.settings = settings

    def get_program(self, program_code: str) -> Program:
        program = self.db.execute(
            select(Program).where(Program.code == program_code.upper())
        ).scalar_one_or_none()
        if program is None:
            raise NotFoundError("Program", program_code)
        return program

    def program_exists(self, program_code: str) -> bool:
        return self.db.execute(
            select(Program.id).where(Program.code == program_code.upper())
        ).first() is not None

    def sections_for(self, program_code: str, semester: int) -> list[str]:
        registered = self.db.execute(
            select(ProgramSection.name)
            .where(ProgramSection.program_code == program_code.upper(), ProgramSection.semester == semester)
            .order_by(ProgramSection.name)
        ).scalars().all()
        if registered:
            return list(registered)
        if not self.settings.canonical_sections:
            raise ConfigurationError(f"No sections registered for {program_code.upper()} semester {semester}")
        return list(self.settings.canonical_sections)

    def missing_subjects(self, subject_ids: Iterable[str]) -> list[str]:
        wanted = set(subject_ids)
        if not wanted:
            return []
        found = set(self.db.execute(select(Subject.id).where(Subject.id.in_(wanted))).scalars().all())
        return sorted(wanted - found)

    def missing_teachers(self, teacher_ids: Iterable[str]) -> list[str]:
        wanted = set(teacher_ids)
        if not wanted:
            return []
        found = set(self.db.execute(select(Teacher.id).where(Teacher.id.in_(wanted))).scalars().all())
        return sorted(wanted - found)

    def missing_rooms(self, room_ids: Iterable[str]) -> list[str]:
        wanted = set(room_ids)
        if not wanted:
            return []
        found = set(self.db.execute(select(Room.id).where(Room.id.in_(wanted))).scalars().all())
        return sorted(wanted - found)

    def active_teacher_ids(self) -> list[str]:
        return list(
            self.db.execute(select(Teacher.id).where(Teacher.is_active.is_(True)).order_by(Teacher.short_name))
            .scalars()
            .all()
        )

    def active_room_ids(self) -> list[str]:
        return list(
            self.db.execute(select(Room.id).where(Room.is_active.is_(True)).order_by(Room.name)).scalars().all()
        )

    def display_names(
        self,
        *,
        subject_ids: Iterable[str] = (),
        teacher_ids: Iterable[str] = (),
        room_ids: Iterable[str] = (),
    ) -> DisplayNames:
        names = DisplayNames()
        subject_set = {item for item in subject_ids if item}
        teacher_set = {item for item in teacher_ids if item}
        room_set = {item for item in room_ids if item}
        if subject_set:
            for subject in self.db.execute(select(Subject).where(Subject.id.in_(subject_set))).scalars():
                names.subjects[subject.id] = (subject.code, subject.name)
        if teacher_set:
            for teacher in self.db.execute(select(Teacher).where(Teacher.id.in_(teacher_set))).scalars():
                names.teachers[teacher.id] = teacher.short_name
        if room_set:
            for room in self.db.execute(select(Room).where(Room.id.in_(room_set))).scalars():
                names.rooms[room.id] = room.name
        return names

    def display_names_for(self, assignments: Iterable) -> DisplayNames:
        subject_ids: set[str] = set()
        teacher_ids: set[str] = set()
        room_ids: set[str] = set()
        for assignment in assignments:
            if assignment.subject_id:
                subject_ids.add(assignment.subject_id)
            teacher_ids.update(assignment.teacher_ids or [])
            if assignment.room_id:
                room_ids.add(assignment.room_id)
            alternate = assignment.alternate_config or {}
            if alternate.get("subject_id"):
                subject_ids.add(alternate["subject_id"])
            teacher_ids.update(alternate.get("teacher_ids", []))
            if alternate.get("room_id"):
                room_ids.add(alternate["room_id"])
        return self.display_names(subject_ids=subject_ids, teacher_ids=teacher_ids, room_ids=room_ids)
