"""
Conflict Index: per-doctor set of active booked intervals.

Each doctor owns a sequence of non-overlapping reservations sorted by start.
Because they never overlap, the ends are sorted too, so a candidate [a, b)
only has to be compared with the last reservation starting before b.

Each doctor has its own lock, held only for the in-memory check-and-insert:
bookings for different doctors never wait on each other and a reserve call
never waits for a slot to become free.
"""
from __future__ import annotations

import logging
import threading
import uuid
from bisect import bisect_left, insort
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .availability import Interval
from .errors import SlotConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationToken:
    doctor_id: str
    key: str
    interval: Interval


@dataclass
class _DoctorSlots:
    lock: threading.Lock = field(default_factory=threading.Lock)
    starts: list[datetime] = field(default_factory=list)
    # (start, key) kept in the same order as `starts`
    entries: list[tuple[datetime, str]] = field(default_factory=list)
    by_key: dict[str, Interval] = field(default_factory=dict)
    loaded: bool = False
    # keys released before the first load: a storage read in flight may still list them
    released: set[str] = field(default_factory=set)

    def conflicting(self, interval: Interval) -> str | None:
        i = bisect_left(self.starts, interval.end)
        if i == 0:
            return None
        _, key = self.entries[i - 1]
        return key if self.by_key[key].end > interval.start else None

    def insert(self, key: str, interval: Interval) -> None:
        insort(self.entries, (interval.start, key))
        insort(self.starts, interval.start)
        self.by_key[key] = interval

    def remove(self, key: str) -> bool:
        interval = self.by_key.pop(key, None)
        if interval is None:
            return False
        i = self.entries.index((interval.start, key), bisect_left(self.starts, interval.start))
        del self.entries[i]
        del self.starts[i]
        return True


class ConflictIndex:
    def __init__(self) -> None:
        self._doctors: dict[str, _DoctorSlots] = {}

    def _slots(self, doctor_id: str) -> _DoctorSlots:
        # dict.setdefault is atomic: two threads always get the same bucket
        return self._doctors.setdefault(doctor_id, _DoctorSlots())

    def reserve(self, doctor_id: str, interval: Interval, key: str | None = None) -> ReservationToken:
        """
        Insert `interval` for the doctor unless it overlaps an active reservation.
        Raises SlotConflict immediately when the slot is taken.
        """
        key = key or str(uuid.uuid4())
        slots = self._slots(doctor_id)
        with slots.lock:
            if key in slots.by_key:
                raise ValueError(f"Reservation {key} already exists for doctor {doctor_id}")
            clash = slots.conflicting(interval)
            if clash is not None:
                raise SlotConflict(doctor_id)
            slots.insert(key, interval)

        logger.debug(f"Reserved {interval.start:%Y-%m-%d %H:%M} for doctor {doctor_id} ({key})")
        return ReservationToken(doctor_id=doctor_id, key=key, interval=interval)

    def release(self, doctor_id: str, token: ReservationToken | str) -> bool:
        """Remove a reservation. Releasing an unknown or already released one returns False."""
        key = token.key if isinstance(token, ReservationToken) else token
        slots = self._slots(doctor_id)
        with slots.lock:
            removed = slots.remove(key)
            if not slots.loaded:
                slots.released.add(key)

        if removed:
            logger.debug(f"Released reservation {key} of doctor {doctor_id}")
        return removed

    def is_free(self, doctor_id: str, interval: Interval) -> bool:
        slots = self._doctors.get(doctor_id)
        if slots is None:
            return True
        with slots.lock:
            return slots.conflicting(interval) is None

    def is_loaded(self, doctor_id: str) -> bool:
        slots = self._doctors.get(doctor_id)
        return slots is not None and slots.loaded

    def load(self, doctor_id: str, entries: Iterable[tuple[str, Interval]]) -> bool:
        """
        Fill a doctor's reservations from storage, once.
        Entries already reserved in memory win, entries released since the storage
        read are skipped. Stored overlaps are kept but logged: they can only come
        from data written outside this index.
        Returns False if the doctor was already loaded.
        """
        slots = self._slots(doctor_id)
        with slots.lock:
            if slots.loaded:
                return False
            for key, interval in sorted(entries, key=lambda e: e[1].start):
                if key in slots.by_key or key in slots.released:
                    continue
                if slots.conflicting(interval) is not None:
                    logger.warning(f"Stored appointment {key} overlaps another booking of doctor {doctor_id}")
                slots.insert(key, interval)
            slots.loaded = True
            slots.released.clear()

        logger.info(f"Conflict index loaded for doctor {doctor_id} ({len(slots.by_key)} active)")
        return True

    def reservations(self, doctor_id: str) -> dict[str, Interval]:
        slots = self._doctors.get(doctor_id)
        if slots is None:
            return {}
        with slots.lock:
            return dict(slots.by_key)

    def doctor_ids(self) -> list[str]:
        return list(self._doctors)

    def forget(self, doctor_id: str) -> None:
        self._doctors.pop(doctor_id, None)
