from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from routine.core.config import Settings
from routine.db.base import Base
from routine.models.time_slot import TimeSlot

logger = logging.getLogger(__name__)

# (start, end) of the eleven daily periods; ids and sort order follow list position.
DEFAULT_PERIODS: list[tuple[str, str]] = [
    ("07:00", "07:50"),
    ("07:50", "08:40"),
    ("08:40", "09:30"),
    ("09:30", "09:45"),
    ("09:45", "10:35"),
    ("10:35", "11:25"),
    ("11:25", "12:15"),
    ("12:15", "13:00"),
    ("13:00", "13:50"),
    ("13:50", "14:40"),
    ("14:40", "15:30"),
]

PERIOD_NAMES = [
    "First",
    "Second",
    "Third",
    "Fourth",
    "Fifth",
    "Sixth",
    "Seventh",
    "Eighth",
    "Ninth",
    "Tenth",
    "Eleventh",
]


def default_time_slots() -> list[TimeSlot]:
    return [
        TimeSlot(
            id=index,
            label=f"{PERIOD_NAMES[index]} Period",
            start_time=start_time,
            end_time=end_time,
            is_break=False,
            sort_order=index,
        )
        for index, (start_time, end_time) in enumerate(DEFAULT_PERIODS)
    ]


def seed_default_time_slots(db: Session) -> int:
    """Insert the default period catalog when no slots exist; returns the number added."""
    existing = db.execute(select(func.count()).select_from(TimeSlot)).scalar_one()
    if existing:
        return 0
    slots = default_time_slots()
    db.add_all(slots)
    db.commit()
    logger.info("Seeded %d default time slots", len(slots))
    return len(slots)


def bootstrap_database(engine: Engine, settings: Settings) -> None:
    try:
        if settings.auto_create_schema:
            Base.metadata.create_all(bind=engine)
        if settings.seed_default_time_slots:
            with Session(engine) as db:
                seed_default_time_slots(db)
    except SQLAlchemyError as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Database bootstrap failed")
        raise RuntimeError("Database bootstrap failed") from exc
