from collections.abc import Generator

from fastapi import Depends, Header, Path
from sqlalchemy.orm import Session

from routine.core.config import get_settings
from routine.db.session import SessionLocal
from routine.schemas.routine import SectionContext
from routine.services.engine import RoutineEngine


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_engine(db: Session = Depends(get_db)) -> RoutineEngine:
    return RoutineEngine(db, get_settings())


def get_actor(x_actor: str | None = Header(default=None, max_length=100)) -> str | None:
    return x_actor


def section_context(
    program_code: str = Path(min_length=1, max_length=20),
    semester: int = Path(ge=1, le=8),
    section: str = Path(min_length=1, max_length=20),
) -> SectionContext:
    return SectionContext(program_code=program_code, semester=semester, section=section)
