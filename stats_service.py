from __future__ import annotations
import datetime
from typing import Dict, List, Optional

from algorithms import WeekKey
from models import Routine
from routine_repository import ALL_WEEKS, RoutineRepository


class StatisticsService:
    """Compute dashboard and progress statistics for logged routines."""

    def __init__(self, repo: RoutineRepository) -> None:
        self.repo = repo

    def weekly_stats(self, today: datetime.date | None = None) -> dict:
        """Return counts for the week containing ``today``."""
        week = WeekKey.current_week(today)
        this_week = [r for r in self.repo.routines if r.week == week]
        return {
            "week": week,
            "routines_this_week": len(this_week),
            "completed_this_week": sum(1 for r in this_week if r.completed),
            "total_exercises": sum(len(r.exercises) for r in this_week),
            "total_routines": len(self.repo.routines),
        }

    def completion_rate(self, week: str = ALL_WEEKS) -> float:
        routines = self.repo.filter_by_week(week)
        if not routines:
            return 0.0
        done = sum(1 for r in routines if r.completed)
        return round(done / len(routines), 4)

    def progress(self, routine_id: str, limit: int = 3) -> Optional[dict]:
        """Compare a routine with earlier sessions of the same name.

        ``exercises`` maps each exercise name of the routine to the matching
        entries of the similar sessions, newest first.
        """
        routine = self.repo.get(routine_id)
        if routine is None:
            return None
        similar = self.repo.similar_to(routine, limit)
        history: Dict[str, List[dict]] = {}
        for ex in routine.exercises:
            entries = history.setdefault(ex.name, [])
            for past in similar:
                for past_ex in past.exercises:
                    if past_ex.name.lower() != ex.name.lower():
                        continue
                    entries.append(
                        {
                            "routine_id": past.id,
                            "date": past.date.isoformat(),
                            "week": past.week,
                            "sets": past_ex.sets,
                            "reps": past_ex.reps,
                            "rpe": past_ex.rpe,
                            "rir": past_ex.rir,
                        }
                    )
        return {
            "routine": routine,
            "similar": similar,
            "exercises": history,
        }

    @staticmethod
    def summarize(routine: Routine) -> dict:
        return {
            "id": routine.id,
            "name": routine.name,
            "date": routine.date.isoformat(),
            "week": routine.week,
            "exercise_count": len(routine.exercises),
            "completed": routine.completed,
        }
