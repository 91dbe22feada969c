import os

# Settings are cached on first import; point them at SQLite and skip the startup bootstrap.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
os.environ.setdefault("SEED_DEFAULT_TIME_SLOTS", "false")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import routine.models  # noqa: F401
from routine.api.deps import get_db
from routine.core.config import Settings, get_settings
from routine.db.base import Base
from routine.db.bootstrap import seed_default_time_slots
from routine.db.session import enable_sqlite_foreign_keys
from routine.main import app
from routine.models.program import Program
from routine.models.room import Room, RoomType
from routine.models.subject import Subject
from routine.models.teacher import Teacher
from routine.schemas.routine import SectionContext
from routine.services.engine import RoutineEngine
from routine.services.slot_locks import clear_slot_locks


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def seed(session_factory):
    """Registry rows shared by most tests: one program, five subjects, four teachers, four rooms."""
    clear_slot_locks()
    db = session_factory()
    try:
        seed_default_time_slots(db)
        db.add(Program(id="prog-cse", code="CSE", name="Computer Engineering", total_semesters=8))
        db.add_all(
            [
                Subject(id="sub-math", code="MATH101", name="Mathematics I"),
                Subject(id="sub-phy", code="PHY101", name="Physics"),
                Subject(id="sub-prog-lab", code="CS102L", name="Programming Lab", has_lab=True),
                Subject(id="sub-db-lab", code="CS204L", name="Database Lab", has_lab=True),
                Subject(id="sub-ai", code="CS455", name="Artificial Intelligence", is_elective=True),
            ]
        )
        db.add_all(
            [
                Teacher(id="t1", full_name="Ram Kumar Sharma", short_name="RKS"),
                Teacher(id="t2", full_name="Sita Devi Thapa", short_name="SDT"),
                Teacher(id="t3", full_name="Hari Prasad Joshi", short_name="HPJ"),
                Teacher(id="t4", full_name="Gita Karki", short_name="GK"),
            ]
        )
        db.add_all(
            [
                Room(id="r1", name="Room 101"),
                Room(id="r2", name="Room 102"),
                Room(id="lab1", name="Lab 1", type=RoomType.lab),
                Room(id="lab2", name="Lab 2", type=RoomType.lab),
            ]
        )
        db.commit()
    finally:
        db.close()
    yield SimpleNamespace(
        program="CSE",
        math="sub-math",
        physics="sub-phy",
        prog_lab="sub-prog-lab",
        db_lab="sub-db-lab",
        ai="sub-ai",
        t1="t1",
        t2="t2",
        t3="t3",
        t4="t4",
        r1="r1",
        r2="r2",
        lab1="lab1",
        lab2="lab2",
    )
    clear_slot_locks()


@pytest.fixture()
def db(session_factory, seed):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings() -> Settings:
    return get_settings()


@pytest.fixture()
def engine(db, settings) -> RoutineEngine:
    return RoutineEngine(db, settings)


@pytest.fixture()
def section_ab() -> SectionContext:
    return SectionContext(program_code="CSE", semester=1, section="AB")


@pytest.fixture()
def section_cd() -> SectionContext:
    return SectionContext(program_code="CSE", semester=1, section="CD")


@pytest.fixture()
def client(session_factory, seed):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
