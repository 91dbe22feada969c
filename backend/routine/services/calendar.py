from __future__ import annotations

from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from routine.core.exceptions import ValidationError
from routine.models.time_slot import TimeSlot


class SlotLike(Protocol):
    id: int
    label: str
    start_time: str
    end_time: str
    is_break: bool
    sort_order: int


class TimeSlotCalendar:
    """Ordered daily slot catalog; positions come from ``sort_order`` only."""

    def __init__(self, slots: Iterable[SlotLike]) -> None:
        self._slots: list[SlotLike] = sorted(slots, key=lambda slot: (slot.sort_order, slot.id))
        self._by_id = {slot.id: slot for slot in self._slots}
        self._position = {slot.id: index for index, slot in enumerate(self._slots)}

    @classmethod
    def load(cls, db: Session) -> "TimeSlotCalendar":
        return cls(db.execute(select(TimeSlot)).scalars().all())

    @property
    def slots(self) -> list[SlotLike]:
        return list(self._slots)

    @property
    def teaching_slots(self) -> list[SlotLike]:
        return [slot for slot in self._slots if not slot.is_break]

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, slot_id: int) -> bool:
        return slot_id in self._by_id

    def get(self, slot_id: int) -> SlotLike | None:
        return self._by_id.get(slot_id)

    def position(self, slot_id: int) -> int:
        return self._position[slot_id]

    def is_break(self, slot_id: int) -> bool:
        slot = self._by_id.get(slot_id)
        return bool(slot and slot.is_break)

    def require_teaching_slot(self, slot_id: int, *, field: str = "slot_id") -> SlotLike:
        slot = self._by_id.get(slot_id)
        if slot is None:
            raise ValidationError("Unknown time slot", details={field: f"Time slot {slot_id} does not exist"})
        if slot.is_break:
            raise ValidationError(
                "Break slots cannot hold classes",
                details={field: f"Time slot {slot_id} ({slot.label}) is a break"},
            )
        return slot

    def ordered_run(self, slot_ids: Iterable[int], *, field: str = "slot_ids", minimum: int = 1) -> list[int]:
        """Sort requested slot ids by calendar position and check they form one gap-free run."""
        requested = list(slot_ids)
        if len(set(requested)) != len(requested):
            raise ValidationError("Duplicate slots in request", details={field: "Each slot may appear only once"})
        for slot_id in requested:
            self.require_teaching_slot(slot_id, field=field)
        if len(requested) < minimum:
            raise ValidationError(
                "Too few slots for a spanned class",
                details={field: f"A spanned class needs at least {minimum} consecutive slots"},
            )
        ordered = sorted(requested, key=self.position)
        if not self.is_contiguous(ordered):
            raise ValidationError(
                "Slots are not consecutive",
                details={field: f"Slots {ordered} are not consecutive in the daily calendar"},
            )
        return ordered

    def is_contiguous(self, ordered_slot_ids: list[int]) -> bool:
        positions = [self.position(slot_id) for slot_id in ordered_slot_ids]
        return all(later - earlier == 1 for earlier, later in zip(positions, positions[1:]))

    def time_range(self, slot_ids: Iterable[int]) -> str:
        known = sorted((slot_id for slot_id in slot_ids if slot_id in self._by_id), key=self.position)
        if not known:
            return "Unknown"
        first = self._by_id[known[0]]
        last = self._by_id[known[-1]]
        return f"{first.start_time}-{last.end_time}"
