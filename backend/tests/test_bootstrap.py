from sqlalchemy import select

from routine.db.bootstrap import default_time_slots, seed_default_time_slots
from routine.models.time_slot import TimeSlot


def test_default_catalog_has_eleven_ordered_periods():
    slots = default_time_slots()

    assert [slot.id for slot in slots] == list(range(11))
    assert [slot.sort_order for slot in slots] == list(range(11))
    assert slots[0].label == "First Period"
    assert (slots[0].start_time, slots[0].end_time) == ("07:00", "07:50")
    assert (slots[-1].start_time, slots[-1].end_time) == ("14:40", "15:30")
    assert not any(slot.is_break for slot in slots)


def test_seeding_only_fills_an_empty_catalog(session_factory):
    db = session_factory()
    try:
        assert seed_default_time_slots(db) == 11
        assert seed_default_time_slots(db) == 0
        assert len(db.execute(select(TimeSlot)).scalars().all()) == 11
    finally:
        db.close()
