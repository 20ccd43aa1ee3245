import os
import sys
import datetime
import threading
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import WeekKey
from db import KeyValueRepository, MemoryKeyValueStore
from events import EventBus
from models import Exercise, Routine, RoutineDraft
from routine_repository import RoutineRepository
from routine_store import RoutineStore

TODAY = datetime.date(2024, 3, 5)


def draft(name: str = "Push Day", day: str = "2024-01-10", completed: bool = False) -> RoutineDraft:
    return RoutineDraft(
        name=name,
        date=datetime.date.fromisoformat(day),
        week=WeekKey.week_label(day),
        exercises=[
            Exercise(name="Bench Press", sets=4, reps="8-10", rpe=8, rir=2, comments="paused"),
            Exercise(name="Dips", sets=3, reps="AMRAP"),
        ],
        completed=completed,
    )


@pytest.fixture
def storage():
    return MemoryKeyValueStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def repo(storage, bus):
    return RoutineRepository(RoutineStore(storage, bus), bus, clock=lambda: TODAY)


def test_create_assigns_id_and_persists(repo, storage, bus):
    routine = repo.create(draft())
    assert routine.id
    assert routine.week == "2024-W2"
    assert routine.completed is False
    assert repo.routines == [routine]
    fresh = RoutineRepository(RoutineStore(storage, EventBus()))
    assert fresh.routines == [routine]


def test_create_keeps_draft_week(repo):
    d = draft()
    d.week = "1999-W1"
    assert repo.create(d).week == "1999-W1"


def test_ids_are_unique(repo):
    ids = {repo.create(draft()).id for _ in range(20)}
    assert len(ids) == 20


def test_update_replaces_matching_routine(repo):
    routine = repo.create(draft())
    other = repo.create(draft("Leg Day", "2024-01-11"))
    renamed = routine.model_copy(update={"name": "Upper"})
    repo.update(renamed)
    assert repo.routines == [renamed, other]


def test_update_unknown_id_is_noop(repo):
    routine = repo.create(draft())
    ghost = routine.model_copy(update={"id": "missing", "name": "Ghost"})
    repo.update(ghost)
    assert repo.routines == [routine]


def test_toggle_complete(repo):
    routine = repo.create(draft())
    assert repo.toggle_complete(routine.id).completed is True
    assert repo.get(routine.id).completed is True
    assert repo.toggle_complete(routine.id).completed is False
    assert repo.toggle_complete("missing") is None


def test_update_exercise_keeps_week(repo):
    routine = repo.create(draft())
    edited = routine.exercises[0].model_copy(update={"sets": 5, "comments": "easy"})
    updated = repo.update_exercise(routine.id, edited)
    assert updated.exercises[0].sets == 5
    assert updated.exercises[1] == routine.exercises[1]
    moved = updated.model_copy(update={"date": datetime.date(2024, 6, 1)})
    repo.update(moved)
    assert repo.get(routine.id).week == "2024-W2"
    assert repo.update_exercise("missing", edited) is None


def test_duplicate(repo):
    original = repo.create(draft(completed=True))
    copy = repo.duplicate(original)
    assert copy.id != original.id
    assert copy.completed is False
    assert copy.date == TODAY
    assert copy.week == "2024-W10"
    assert copy.name == original.name
    assert len(copy.exercises) == len(original.exercises)
    for new, old in zip(copy.exercises, original.exercises):
        assert new.id != old.id
        assert (new.name, new.sets, new.reps) == (old.name, old.sets, old.reps)
        assert new.rpe is None and new.rir is None and new.comments is None
    assert repo.routines[0] == copy
    assert repo.routines[1] == original


def test_duplicate_uses_explicit_today(repo):
    original = repo.create(draft())
    copy = repo.duplicate(original, today=datetime.date(2024, 1, 1))
    assert copy.week == "2024-W1"


def test_filter_by_week(repo):
    a = repo.create(draft("A", "2024-01-08"))
    b = repo.create(draft("B", "2024-01-10"))
    c = repo.create(draft("C", "2024-01-15"))
    assert repo.filter_by_week("all") == [c, b, a]
    assert repo.filter_by_week("2024-W2") == [b, a]
    assert repo.filter_by_week("2024-W3") == [c]
    assert repo.filter_by_week("2030-W1") == []
    for week in repo.weeks():
        assert all(r.week == week for r in repo.filter_by_week(week))


def test_weeks_newest_first(repo):
    repo.create(draft("A", "2024-01-08"))
    repo.create(draft("B", "2024-01-20"))
    repo.create(draft("C", "2024-01-10"))
    assert repo.weeks() == ["2024-W3", "2024-W2"]


def test_week_routines(repo):
    a = repo.create(draft("A", "2024-01-10"))
    repo.create(draft("B", "2024-01-15"))
    c = repo.create(draft("C", "2024-01-08"))
    assert repo.week_routines(a) == [a, c]


def test_similar_to(repo):
    base = repo.create(draft("Push Day", "2024-01-10"))
    older = repo.create(draft("push day", "2024-01-03"))
    newest = repo.create(draft("PUSH DAY", "2024-02-01"))
    middle = repo.create(draft("Push Day", "2024-01-20"))
    oldest = repo.create(draft("Push day", "2023-12-01"))
    repo.create(draft("Pull Day", "2024-01-11"))
    similar = repo.similar_to(base)
    assert similar == [newest, middle, older]
    assert base not in similar
    assert oldest not in similar
    assert repo.similar_to(base, limit=10) == [newest, middle, older, oldest]
    assert repo.similar_to(base, limit=0) == []


def test_recent(repo):
    created = [repo.create(draft(f"R{i}", f"2024-01-{i + 10}")) for i in range(7)]
    assert repo.recent() == list(reversed(created[-5:]))
    assert repo.recent(2) == [created[6], created[5]]
    assert repo.recent(0) == []


def test_paginate():
    items = [
        Routine.from_draft(draft(f"R{i}", f"2024-02-{i + 1:02d}"), routine_id=str(i))
        for i in range(23)
    ]
    page = RoutineRepository.paginate(items, 1, 10)
    assert page.total_pages == 3
    assert page.total_count == 23
    assert page.page == 1
    assert len(page.items) == 10
    joined = []
    for n in range(1, page.total_pages + 1):
        joined.extend(RoutineRepository.paginate(items, n, 10).items)
    assert joined == items
    assert len(RoutineRepository.paginate(items, 3, 10).items) == 3
    assert RoutineRepository.paginate(items, 4, 10).items == []
    assert RoutineRepository.paginate(items, 0, 10).items == []
    assert RoutineRepository.paginate([], 1, 10).total_pages == 0
    with pytest.raises(ValueError):
        RoutineRepository.paginate(items, 1, 0)


def test_paginate_routines(repo):
    for i in range(5):
        repo.create(draft(f"R{i}", f"2024-01-{i + 10}"))
    ordered = repo.filter_by_week("all")
    pages = [RoutineRepository.paginate(ordered, n, 2) for n in (1, 2, 3)]
    assert pages[0].total_pages == 3
    assert [r for p in pages for r in p.items] == ordered


def test_sync_between_repositories(storage, bus):
    first = RoutineRepository(RoutineStore(storage, bus), bus)
    second = RoutineRepository(RoutineStore(storage, bus), bus)
    seen = []
    unsubscribe = second.on_change(seen.append)
    routine = first.create(draft())
    assert second.routines == [routine]
    assert seen == [[routine]]
    unsubscribe()
    first.toggle_complete(routine.id)
    assert second.get(routine.id).completed is True
    assert len(seen) == 1


def test_separate_sessions_last_writer_wins(storage):
    first = RoutineRepository(RoutineStore(storage, EventBus()))
    second = RoutineRepository(RoutineStore(storage, EventBus()))
    mine = second.create(draft("Mine"))
    theirs = first.create(draft("Theirs"))
    # first never saw "Mine", so its write replaces it
    assert second.routines == [mine]
    assert RoutineStore(storage).load() == [theirs]


def test_close_stops_sync(storage, bus):
    first = RoutineRepository(RoutineStore(storage, bus), bus)
    second = RoutineRepository(RoutineStore(storage, bus), bus)
    second.close()
    first.create(draft())
    assert second.routines == []
    assert second.reload() == first.routines


def test_in_memory_state_survives_failed_save(bus):
    store = RoutineStore(MemoryKeyValueStore(max_value_size=10), bus)
    repo = RoutineRepository(store, bus)
    routine = repo.create(draft())
    assert repo.routines == [routine]
    assert store.load() == []


def test_concurrent_writers_keep_every_routine(tmp_path):
    storage = KeyValueRepository(str(tmp_path / "threads.db"))
    repo = RoutineRepository(RoutineStore(storage, EventBus()))
    first = repo.create(draft("Seed"))

    def writer(n: int) -> None:
        for i in range(15):
            repo.create(draft(f"T{n}-{i}"))
            repo.toggle_complete(first.id)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(repo.routines) == 121
    assert len(RoutineStore(storage).load()) == 121
    assert repo.get(first.id).completed is False
