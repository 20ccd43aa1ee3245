"""Durable load/save of the routine collection.

The collection lives in a string key-value store under three fixed keys:

- ``training-routines``: the primary envelope
  ``{"version", "timestamp", "routines", "backup"}``
- ``training-routines-backup``: the same envelope plus ``backupTimestamp``,
  rewritten on every save
- ``training-data-version``: reserved

Neither ``save`` nor ``load`` raises. A failed primary write is retried once
after clearing the slot; a corrupt primary is served from the backup slot.
Data written before envelopes existed (a bare JSON list of routines) is still
read.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Callable, Iterable, List, Optional, Protocol

from events import DATA_UPDATED_EVENT, EventBus
from models import BackupPayload, Routine, StoredPayload, dump_routines

logger = logging.getLogger(__name__)

STORAGE_KEY = "training-routines"
BACKUP_KEY = "training-routines-backup"
VERSION_KEY = "training-data-version"
CURRENT_VERSION = "1.0"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _iso_now() -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RoutineStore:
    """Persist routines with a backup slot and a version tag."""

    def __init__(
        self,
        storage: KeyValueStorage,
        bus: EventBus | None = None,
        clock: Callable[[], str] = _iso_now,
    ) -> None:
        self.storage = storage
        self.bus = bus or EventBus()
        self._clock = clock

    def export_payload(self, routines: Iterable[Routine]) -> dict[str, Any]:
        """Return the primary envelope for ``routines`` as a JSON-ready dict."""
        payload = StoredPayload(
            version=CURRENT_VERSION,
            timestamp=self._clock(),
            routines=[Routine.model_validate(r) for r in routines],
        )
        return {**payload.model_dump(mode="json"), "routines": dump_routines(payload.routines)}

    @staticmethod
    def parse_payload(data: Any) -> List[Routine]:
        """Return the routines of a decoded envelope or legacy list.

        Raises ``ValueError`` when ``data`` has neither shape or holds invalid
        routines.
        """
        if isinstance(data, dict) and data.get("version") and data.get("routines") is not None:
            data = data["routines"]
            if not isinstance(data, list):
                raise ValueError("routines must be a list")
            return [Routine.model_validate(item) for item in data]
        if isinstance(data, list):
            return [Routine.model_validate(item) for item in data]
        raise ValueError("unrecognized routine payload")

    def save(self, routines: Iterable[Routine]) -> None:
        routines = list(routines)
        try:
            payload = self._write_primary(routines)
        except Exception as exc:
            logger.warning("saving routines failed (%s); clearing primary slot and retrying", exc)
            try:
                self.storage.remove_item(STORAGE_KEY)
                payload = self._write_primary(routines)
            except Exception:
                logger.exception("critical storage error: %d routines not saved", len(routines))
                return

        try:
            backup = BackupPayload.model_validate(
                {**payload, "backupTimestamp": self._clock()}
            )
            self.storage.set_item(
                BACKUP_KEY, json.dumps(backup.model_dump(mode="json", exclude_none=True))
            )
        except Exception:
            logger.exception("writing backup slot failed")

        logger.debug("saved %d routines", len(routines))
        self.bus.emit(
            DATA_UPDATED_EVENT,
            [Routine.model_validate(r).model_copy(deep=True) for r in routines],
        )

    def _write_primary(self, routines: List[Routine]) -> dict[str, Any]:
        payload = self.export_payload(routines)
        self.storage.set_item(STORAGE_KEY, json.dumps(payload))
        return payload

    def load(self) -> List[Routine]:
        try:
            stored = self.storage.get_item(STORAGE_KEY)
        except Exception:
            logger.exception("reading primary slot failed")
            return self.load_backup()
        if not stored:
            return []

        try:
            return self.parse_payload(json.loads(stored))
        except Exception as exc:
            logger.error("primary routine data unusable: %s", exc)
            logger.warning("recovering routines from backup")
            return self.load_backup()

    def load_backup(self) -> List[Routine]:
        try:
            stored = self.storage.get_item(BACKUP_KEY)
            if not stored:
                return []
            data = json.loads(stored)
            if not isinstance(data, dict):
                raise ValueError("backup payload is not an object")
            return [Routine.model_validate(item) for item in data.get("routines") or []]
        except Exception as exc:
            logger.error("backup routine data unusable: %s", exc)
            return []
