from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.api.deps import get_actor, get_db
from routine.core.config import get_settings
from routine.models.program import Program, ProgramSection
from routine.models.room import Room
from routine.models.subject import Subject
from routine.models.teacher import Teacher
from routine.schemas.registry import (
    ProgramCreate,
    ProgramOut,
    ProgramSectionCreate,
    ProgramSectionOut,
    RoomCreate,
    RoomOut,
    SubjectCreate,
    SubjectOut,
    TeacherCreate,
    TeacherOut,
)
from routine.services.audit import log_activity
from routine.services.registry import RoutineRegistry

router = APIRouter()


@router.get("/programs/", response_model=list[ProgramOut])
def list_programs(db: Session = Depends(get_db)) -> list[ProgramOut]:
    return list(db.execute(select(Program).order_by(Program.code.asc())).scalars())


@router.post("/programs/", response_model=ProgramOut, status_code=status.HTTP_201_CREATED)
def create_program(
    payload: ProgramCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ProgramOut:
    existing = db.execute(select(Program).where(Program.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Program code already exists")
    program = Program(**payload.model_dump())
    db.add(program)
    log_activity(db, actor=actor, action="program.create", entity_type="program", entity_id=payload.code)
    db.commit()
    db.refresh(program)
    return program


@router.post(
    "/programs/{program_code}/sections",
    response_model=ProgramSectionOut,
    status_code=status.HTTP_201_CREATED,
)
def create_program_section(
    program_code: str,
    payload: ProgramSectionCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ProgramSectionOut:
    program = RoutineRegistry(db, get_settings()).get_program(program_code)
    if payload.semester > program.total_semesters:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{program.code} has only {program.total_semesters} semesters",
        )
    existing = db.execute(
        select(ProgramSection).where(
            ProgramSection.program_code == program.code,
            ProgramSection.semester == payload.semester,
            ProgramSection.name == payload.name,
        )
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Section already exists")
    section = ProgramSection(program_code=program.code, **payload.model_dump())
    db.add(section)
    log_activity(
        db,
        actor=actor,
        action="program.section.create",
        entity_type="program",
        entity_id=program.code,
        details={"semester": payload.semester, "section": payload.name},
    )
    db.commit()
    db.refresh(section)
    return section


@router.get("/programs/{program_code}/semesters/{semester}/sections", response_model=list[str])
def list_program_sections(program_code: str, semester: int, db: Session = Depends(get_db)) -> list[str]:
    registry = RoutineRegistry(db, get_settings())
    program = registry.get_program(program_code)
    return registry.sections_for(program.code, semester)


@router.get("/subjects/", response_model=list[SubjectOut])
def list_subjects(db: Session = Depends(get_db)) -> list[SubjectOut]:
    return list(db.execute(select(Subject).order_by(Subject.code.asc())).scalars())


@router.post("/subjects/", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> SubjectOut:
    existing = db.execute(select(Subject).where(Subject.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject code already exists")
    subject = Subject(**payload.model_dump())
    db.add(subject)
    log_activity(db, actor=actor, action="subject.create", entity_type="subject", entity_id=payload.code)
    db.commit()
    db.refresh(subject)
    return subject


@router.get("/teachers/", response_model=list[TeacherOut])
def list_teachers(db: Session = Depends(get_db)) -> list[TeacherOut]:
    return list(db.execute(select(Teacher).order_by(Teacher.short_name.asc())).scalars())


@router.post("/teachers/", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def create_teacher(
    payload: TeacherCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> TeacherOut:
    if payload.email:
        existing = db.execute(select(Teacher).where(Teacher.email == payload.email)).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Teacher email already exists")
    teacher = Teacher(**payload.model_dump())
    db.add(teacher)
    log_activity(db, actor=actor, action="teacher.create", entity_type="teacher", entity_id=payload.short_name)
    db.commit()
    db.refresh(teacher)
    return teacher


@router.get("/rooms/", response_model=list[RoomOut])
def list_rooms(db: Session = Depends(get_db)) -> list[RoomOut]:
    return list(db.execute(select(Room).order_by(Room.name.asc())).scalars())


@router.post("/rooms/", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    actor: str | None = Depends(get_actor),
    db: Session = Depends(get_db),
) -> RoomOut:
    existing = db.execute(select(Room).where(Room.name == payload.name)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room name already exists")
    room = Room(**payload.model_dump())
    db.add(room)
    log_activity(db, actor=actor, action="room.create", entity_type="room", entity_id=payload.name)
    db.commit()
    db.refresh(room)
    return room
