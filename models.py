"""Routine data model and persistence envelopes."""

from __future__ import annotations

import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid4().hex


class Exercise(BaseModel):
    """One movement inside a routine."""

    id: str = Field(default_factory=new_id)
    name: str
    sets: int = 1
    reps: str
    rpe: Optional[int] = None
    rir: Optional[int] = None
    comments: Optional[str] = None

    def clean_copy(self) -> "Exercise":
        """Return a copy with a new id and without effort annotations."""
        return Exercise(name=self.name, sets=self.sets, reps=self.reps)


class RoutineDraft(BaseModel):
    """A routine that has not been assigned an id yet."""

    name: str
    date: datetime.date
    week: str
    exercises: List[Exercise] = []
    completed: bool = False


class Routine(RoutineDraft):
    """One logged workout session."""

    id: str

    @classmethod
    def from_draft(cls, draft: RoutineDraft, routine_id: str | None = None) -> "Routine":
        return cls(id=routine_id or new_id(), **draft.model_dump())


class StoredPayload(BaseModel):
    """Envelope written to the primary storage slot."""

    version: str
    timestamp: str
    routines: List[Routine]
    backup: bool = True


class BackupPayload(StoredPayload):
    """Envelope written to the backup slot."""

    backupTimestamp: str


class Page(BaseModel):
    items: List[Routine]
    page: int
    page_size: int
    total_pages: int
    total_count: int


def dump_routines(routines: List[Routine]) -> list[dict]:
    """Serialize routines to JSON-compatible dicts, omitting unset optionals."""
    return [r.model_dump(mode="json", exclude_none=True) for r in routines]
