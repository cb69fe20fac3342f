"""
Redline Persistence - Debounced, optimistic saving of review documents.

The store never waits for storage. Each mutation schedules a save; a new
mutation inside the quiet period cancels and restarts the timer, and the
document snapshot is taken when the timer fires, so only the latest state
is written. Save failures are logged and never roll back in-memory state.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union

import json_utils as json
from logging_utils import Phase, PhaseLogger

from .models import RedlineDocument

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


class DocumentPersistence(Protocol):
    """Storage collaborator for review documents."""

    def save(self, document: RedlineDocument) -> None:
        ...


class JsonFilePersistence:
    """
    One JSON file per document under `base_path`.

    Files hold the persisted shape (camelCase keys, recomputed metadata) and
    are written atomically through a temporary file.
    """

    def __init__(self, base_path: Optional[Union[str, Path]] = None):
        if base_path is None:
            from config import config
            base_path = config.REDLINE.storage_path
        self.base_path = Path(base_path)

    def path_for(self, document_id: str) -> Path:
        if not _SAFE_ID.match(document_id or ""):
            raise ValueError(f"Unsafe document id for file storage: {document_id!r}")
        return self.base_path / f"{document_id}.json"

    def save(self, document: RedlineDocument) -> None:
        target = self.path_for(document.id)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_file = target.with_suffix(".tmp")
        try:
            temp_file.write_text(
                json.dumps(document.to_persisted_dict(), indent=2), encoding="utf-8"
            )
            temp_file.replace(target)
        except Exception:
            temp_file.unlink(missing_ok=True)
            raise
        logger.debug(f"Saved redline document {document.id} to {target}")

    def load(self, document_id: str) -> Optional[RedlineDocument]:
        target = self.path_for(document_id)
        if not target.exists():
            return None
        data = json.loads(target.read_text(encoding="utf-8"))
        return RedlineDocument.from_persisted_dict(data)

    def delete(self, document_id: str) -> bool:
        target = self.path_for(document_id)
        if not target.exists():
            return False
        target.unlink()
        return True

    def list_ids(self) -> List[str]:
        if not self.base_path.exists():
            return []
        return sorted(p.stem for p in self.base_path.glob("*.json"))


class DebouncedSaver:
    """
    Debounced fire-and-forget saves.

    Args:
        persistence: Object with a `save(document)` method
        snapshot: Callable returning the document state to persist
        delay_seconds: Quiet period before saving (0 saves synchronously)
        phase_logger: Optional PhaseLogger reporting each save as a PERSISTENCE phase

    Example:
        saver = DebouncedSaver(JsonFilePersistence(), store_snapshot, 2.0)
        saver.schedule()   # restarts the timer
        saver.flush()      # writes now if a save is pending
    """

    def __init__(
        self,
        persistence: DocumentPersistence,
        snapshot: Callable[[], RedlineDocument],
        delay_seconds: Optional[float] = None,
        phase_logger: Optional[PhaseLogger] = None,
    ):
        if delay_seconds is None:
            from config import config
            delay_seconds = config.REDLINE.autosave_debounce_seconds
        self.persistence = persistence
        self.delay_seconds = delay_seconds
        self._snapshot = snapshot
        self.phase_logger = phase_logger
        self._lock = threading.Lock()
        # Serializes snapshot, write and counters across timer and caller threads
        self._save_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._closed = False
        self.save_count = 0
        self.failure_count = 0
        self.last_error: Optional[Exception] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """Schedule a save, cancelling any save still waiting."""
        with self._lock:
            if self._closed:
                logger.debug("Saver closed; ignoring schedule request")
                return
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            if self.delay_seconds <= 0:
                run_now = True
            else:
                run_now = False
                self._timer = threading.Timer(
                    self.delay_seconds, self._fire, args=(self._generation,)
                )
                self._timer.daemon = True
                self._timer.start()
        if run_now:
            self._save_now()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._save_now()

    def _save_now(self) -> None:
        with self._save_lock:
            document = self._snapshot()
            if self.phase_logger is None:
                self._write(document)
                return
            with self.phase_logger.phase(Phase.PERSISTENCE, sub_label=document.id):
                if not self._write(document):
                    self.phase_logger.warning(f"Save failed: {self.last_error}")

    def _write(self, document: RedlineDocument) -> bool:
        try:
            self.persistence.save(document)
        except Exception as e:
            self.failure_count += 1
            self.last_error = e
            logger.warning(f"Auto-save of document {document.id} failed: {e}")
            return False
        self.save_count += 1
        self.last_error = None
        logger.debug(f"Auto-saved document {document.id} (save #{self.save_count})")
        return True

    def flush(self) -> bool:
        """Run a pending save immediately. Returns True if one was pending."""
        with self._lock:
            timer = self._timer
            if timer is None:
                return False
            timer.cancel()
            self._timer = None
            self._generation += 1
        self._save_now()
        return True

    def close(self) -> None:
        """Flush any pending save and stop accepting new ones."""
        self.flush()
        with self._lock:
            self._closed = True
