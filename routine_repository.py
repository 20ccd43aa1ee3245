from __future__ import annotations

import datetime
import logging
import math
import threading
from typing import Callable, Iterable, List, Optional

from algorithms import WeekKey
from events import DATA_UPDATED_EVENT, EventBus
from models import Exercise, Page, Routine, RoutineDraft, new_id
from routine_store import RoutineStore

logger = logging.getLogger(__name__)

ALL_WEEKS = "all"


class RoutineRepository:
    """Live routine collection for one session.

    Every mutation is persisted through the store, whose change event is
    applied to every repository listening on the same bus. Incoming
    collections replace local state without merging. Mutations hold a
    re-entrant lock from reading the collection to emitting the change, so
    concurrent writers in one session never commit a stale collection.
    """

    def __init__(
        self,
        store: RoutineStore,
        bus: EventBus | None = None,
        clock: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.store = store
        self.bus = bus or store.bus
        self._clock = clock
        self._listeners: list[Callable[[List[Routine]], None]] = []
        self._lock = threading.RLock()
        self._routines: List[Routine] = store.load()
        self._unsubscribe: Optional[Callable[[], None]] = self.bus.subscribe(
            DATA_UPDATED_EVENT, self._handle_sync
        )

    @property
    def routines(self) -> List[Routine]:
        return list(self._routines)

    def get(self, routine_id: str) -> Optional[Routine]:
        return next((r for r in self._routines if r.id == routine_id), None)

    def reload(self) -> List[Routine]:
        with self._lock:
            self._routines = self.store.load()
            return self.routines

    def _commit(self, routines: List[Routine]) -> None:
        logger.debug("committing %d routines", len(routines))
        self._routines = routines
        self.store.save(routines)

    def create(self, draft: RoutineDraft) -> Routine:
        """Add a new routine; ``draft.week`` is stored as given."""
        routine = Routine.from_draft(draft)
        with self._lock:
            self._commit(self._routines + [routine])
        return routine

    def update(self, routine: Routine) -> None:
        with self._lock:
            self._commit([routine if r.id == routine.id else r for r in self._routines])

    def toggle_complete(self, routine_id: str) -> Optional[Routine]:
        with self._lock:
            routine = self.get(routine_id)
            if routine is None:
                return None
            updated = routine.model_copy(update={"completed": not routine.completed})
            self.update(updated)
        return updated

    def update_exercise(self, routine_id: str, exercise: Exercise) -> Optional[Routine]:
        with self._lock:
            routine = self.get(routine_id)
            if routine is None:
                return None
            exercises = [exercise if ex.id == exercise.id else ex for ex in routine.exercises]
            updated = routine.model_copy(update={"exercises": exercises})
            self.update(updated)
        return updated

    def duplicate(self, routine: Routine, today: datetime.date | None = None) -> Routine:
        """Prepend a clean copy of ``routine`` dated today."""
        day = today or self._clock()
        copy = Routine(
            id=new_id(),
            name=routine.name,
            date=day,
            week=WeekKey.week_label(day),
            exercises=[ex.clean_copy() for ex in routine.exercises],
            completed=False,
        )
        with self._lock:
            self._commit([copy] + self._routines)
        return copy

    def filter_by_week(self, label: str = ALL_WEEKS) -> List[Routine]:
        if label == ALL_WEEKS:
            selected = list(self._routines)
        else:
            selected = [r for r in self._routines if r.week == label]
        return sorted(selected, key=lambda r: r.date, reverse=True)

    def week_routines(self, routine: Routine) -> List[Routine]:
        return [r for r in self._routines if r.week == routine.week]

    def similar_to(self, routine: Routine, limit: int = 3) -> List[Routine]:
        """Return earlier or later sessions with the same name, newest first."""
        name = routine.name.lower()
        matches = [
            r for r in self._routines if r.name.lower() == name and r.id != routine.id
        ]
        matches.sort(key=lambda r: r.date, reverse=True)
        return matches[: max(0, limit)]

    def recent(self, limit: int = 5) -> List[Routine]:
        if limit <= 0:
            return []
        return list(reversed(self._routines[-limit:]))

    def weeks(self) -> List[str]:
        labels: list[str] = []
        for routine in self.filter_by_week(ALL_WEEKS):
            if routine.week not in labels:
                labels.append(routine.week)
        return labels

    @staticmethod
    def paginate(collection: Iterable[Routine], page: int, page_size: int) -> Page:
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        items = list(collection)
        total = len(items)
        start = (page - 1) * page_size
        window = items[start : start + page_size] if page >= 1 else []
        return Page(
            items=window,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
            total_count=total,
        )

    def on_change(self, callback: Callable[[List[Routine]], None]) -> Callable[[], None]:
        """Call ``callback`` with the new collection after every sync."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _handle_sync(self, routines: List[Routine]) -> None:
        self._routines = [r.model_copy(deep=True) for r in routines]
        for callback in list(self._listeners):
            try:
                callback(self.routines)
            except Exception:
                logger.exception("routine change listener failed")

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()
