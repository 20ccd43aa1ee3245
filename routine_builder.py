import datetime
from typing import List, Optional

from algorithms import WeekKey
from models import Exercise, RoutineDraft


class RoutineBuilder:
    """Collect a routine's exercises before it is saved.

    Mirrors the creation form: exercises need a name and reps, and a routine
    needs a name and at least one exercise. The week label is derived from
    the date once, when the draft is built.
    """

    def __init__(self, name: str = "", date: datetime.date | str | None = None) -> None:
        self.name = name
        self.date = WeekKey.to_date(date) if date is not None else datetime.date.today()
        self.exercises: List[Exercise] = []

    def add_exercise(
        self,
        name: str,
        reps: str,
        sets: int = 1,
        rpe: Optional[int] = None,
        rir: Optional[int] = None,
        comments: Optional[str] = None,
    ) -> Exercise:
        exercise = self.make_exercise(name, reps, sets, rpe, rir, comments)
        self.exercises.append(exercise)
        return exercise

    @staticmethod
    def make_exercise(
        name: str,
        reps: str,
        sets: int = 1,
        rpe: Optional[int] = None,
        rir: Optional[int] = None,
        comments: Optional[str] = None,
        exercise_id: Optional[str] = None,
    ) -> Exercise:
        """Return a validated exercise, keeping ``exercise_id`` when editing."""
        name = (name or "").strip()
        reps = str(reps or "").strip()
        if not name:
            raise ValueError("exercise name is required")
        if not reps:
            raise ValueError("reps are required")
        if int(sets) < 1:
            raise ValueError("sets must be at least 1")
        fields = dict(
            name=name,
            sets=int(sets),
            reps=reps,
            rpe=rpe,
            rir=rir,
            comments=comments or None,
        )
        if exercise_id is not None:
            fields["id"] = exercise_id
        return Exercise(**fields)

    def remove_exercise(self, exercise_id: str) -> None:
        self.exercises = [ex for ex in self.exercises if ex.id != exercise_id]

    def build(self) -> RoutineDraft:
        name = (self.name or "").strip()
        if not name:
            raise ValueError("routine name is required")
        if not self.exercises:
            raise ValueError("a routine needs at least one exercise")
        return RoutineDraft(
            name=name,
            date=self.date,
            week=WeekKey.week_label(self.date),
            exercises=list(self.exercises),
            completed=False,
        )
