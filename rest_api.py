import asyncio
import datetime
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from algorithms import WeekKey
from config import APP_VERSION, load_settings
from db import KeyValueRepository, MemoryKeyValueStore
from events import DATA_UPDATED_EVENT, EventBus
from models import Routine, dump_routines
from routine_builder import RoutineBuilder
from routine_repository import ALL_WEEKS, RoutineRepository
from routine_store import RoutineStore
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class ExerciseIn(BaseModel):
    name: str
    reps: str
    sets: int = 1
    rpe: Optional[int] = None
    rir: Optional[int] = None
    comments: Optional[str] = None


class RoutineIn(BaseModel):
    name: str
    date: Optional[datetime.date] = None
    exercises: List[ExerciseIn] = []


class TrainingLogAPI:
    """Provides REST endpoints for the training log."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        backend: str | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = load_settings(yaml_path)
        self.db_path = db_path or self.settings.db_path
        backend = backend or self.settings.storage_backend
        if backend == "memory":
            self.storage = MemoryKeyValueStore(self.settings.max_value_size)
        else:
            self.storage = KeyValueRepository(self.db_path, self.settings.max_value_size)
        self.bus = bus or EventBus()
        self.store = RoutineStore(self.storage, self.bus)
        self.routines = RoutineRepository(self.store, self.bus)
        self.statistics = StatisticsService(self.routines)
        self.watchers: list[WebSocket] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self.routines.on_change(self._on_routines_changed)
        self.app = FastAPI(
            title="Training Log API",
            description="REST API for logging training routines and weekly progress",
            version=APP_VERSION,
        )
        self._setup_routes()

    def _on_routines_changed(self, routines: List[Routine]) -> None:
        if not self.watchers or self._loop is None:
            return
        event = {"event": DATA_UPDATED_EVENT, "routines": dump_routines(routines)}
        asyncio.run_coroutine_threadsafe(self._broadcast(event), self._loop)

    async def _broadcast(self, event: dict) -> None:
        for ws in list(self.watchers):
            try:
                await ws.send_json(event)
            except Exception:
                logger.warning("dropping update watcher after failed send")
                try:
                    await ws.close()
                except Exception:
                    logger.debug("watcher already closed")
                if ws in self.watchers:
                    self.watchers.remove(ws)

    def _require_token(self, x_api_token: str | None = Header(default=None)) -> None:
        token = self.settings.api_token
        if token and x_api_token != token:
            raise HTTPException(status_code=401, detail="invalid api token")

    def _get_or_404(self, routine_id: str) -> Routine:
        routine = self.routines.get(routine_id)
        if routine is None:
            raise HTTPException(status_code=404, detail="routine not found")
        return routine

    def _setup_routes(self) -> None:
        writer = [Depends(self._require_token)]

        @self.app.get("/health")
        def health():
            return {"status": "ok", "routines": len(self.routines.routines)}

        @self.app.websocket("/ws/updates")
        async def updates_socket(ws: WebSocket):
            await ws.accept()
            self._loop = asyncio.get_running_loop()
            self.watchers.append(ws)
            try:
                while True:
                    await ws.receive_text()
            except WebSocketDisconnect:
                logger.debug("update watcher disconnected")
            finally:
                if ws in self.watchers:
                    self.watchers.remove(ws)

        @self.app.get("/routines")
        def list_routines(
            week: str = ALL_WEEKS, page: int = 1, page_size: int | None = None
        ):
            try:
                return self.routines.paginate(
                    self.routines.filter_by_week(week),
                    page,
                    page_size or self.settings.page_size,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/routines", dependencies=writer)
        def create_routine(body: RoutineIn):
            builder = RoutineBuilder(body.name, body.date)
            try:
                for ex in body.exercises:
                    builder.add_exercise(
                        ex.name,
                        ex.reps,
                        sets=ex.sets,
                        rpe=ex.rpe,
                        rir=ex.rir,
                        comments=ex.comments,
                    )
                draft = builder.build()
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.routines.create(draft)

        @self.app.get("/routines/recent")
        def recent_routines(limit: int | None = None):
            if limit is None:
                limit = self.settings.recent_limit
            return self.routines.recent(limit)

        @self.app.get("/routines/{routine_id}")
        def get_routine(routine_id: str):
            return self._get_or_404(routine_id)

        @self.app.put("/routines/{routine_id}", dependencies=writer)
        def update_routine(routine_id: str, routine: Routine):
            if routine.id != routine_id:
                raise HTTPException(status_code=400, detail="id mismatch")
            self._get_or_404(routine_id)
            self.routines.update(routine)
            return routine

        @self.app.post("/routines/{routine_id}/toggle", dependencies=writer)
        def toggle_routine(routine_id: str):
            self._get_or_404(routine_id)
            return self.routines.toggle_complete(routine_id)

        @self.app.put(
            "/routines/{routine_id}/exercises/{exercise_id}", dependencies=writer
        )
        def update_exercise(routine_id: str, exercise_id: str, body: ExerciseIn):
            routine = self._get_or_404(routine_id)
            if not any(ex.id == exercise_id for ex in routine.exercises):
                raise HTTPException(status_code=404, detail="exercise not found")
            try:
                exercise = RoutineBuilder.make_exercise(
                    body.name,
                    body.reps,
                    sets=body.sets,
                    rpe=body.rpe,
                    rir=body.rir,
                    comments=body.comments,
                    exercise_id=exercise_id,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return self.routines.update_exercise(routine_id, exercise)

        @self.app.post("/routines/{routine_id}/duplicate", dependencies=writer)
        def duplicate_routine(routine_id: str):
            return self.routines.duplicate(self._get_or_404(routine_id))

        @self.app.get("/routines/{routine_id}/similar")
        def similar_routines(routine_id: str, limit: int | None = None):
            if limit is None:
                limit = self.settings.similar_limit
            return self.routines.similar_to(self._get_or_404(routine_id), limit)

        @self.app.get("/routines/{routine_id}/week")
        def same_week_routines(routine_id: str):
            return self.routines.week_routines(self._get_or_404(routine_id))

        @self.app.get("/routines/{routine_id}/progress")
        def routine_progress(routine_id: str, limit: int | None = None):
            self._get_or_404(routine_id)
            if limit is None:
                limit = self.settings.similar_limit
            return self.statistics.progress(routine_id, limit)

        @self.app.get("/weeks")
        def list_weeks():
            return self.routines.weeks()

        @self.app.get("/stats/weekly")
        def weekly_stats():
            return self.statistics.weekly_stats()

        @self.app.get("/week_label")
        def week_label(date: str):
            try:
                return {"date": date, "week": WeekKey.week_label(date)}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))


def create_app(yaml_path: str = "settings.yaml") -> FastAPI:
    return TrainingLogAPI(yaml_path=yaml_path).app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app())
