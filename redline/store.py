"""
Redline Store - Suggestion lifecycle and offset bookkeeping for one document.

Suggestions live in an arena keyed by stable id. Every suggestion starts
`pending` and moves once to `accepted`, `rejected` or `modified`:

- accept(id): splice the suggested text into the current content
- modify(id, text): splice user-supplied text instead
- reject(id): status change only, the content is untouched

After a splice, `shift_offsets` moves every other suggestion that starts
at or after the end of the edited range by the length delta, so all ranges
keep addressing the current content.

Mutations are serialized per store, notify subscribed listeners and
schedule a debounced save when a persistence backend is configured.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from logging_utils import PhaseLogger

from .models import (
    RedlineDocument,
    RedlineError,
    RedlineSuggestion,
    Severity,
    SuggestionLocateError,
    SuggestionNotFoundError,
    SuggestionStateError,
    SuggestionStatus,
    SuggestionType,
    TextRange,
)
from .persistence import DebouncedSaver, DocumentPersistence

logger = logging.getLogger(__name__)

ALL = "all"


# =============================================================================
# PURE HELPERS
# =============================================================================


def shift_offsets(
    suggestions: Iterable[RedlineSuggestion],
    edit_range: TextRange,
    delta: int,
) -> List[RedlineSuggestion]:
    """
    Re-derive ranges after the content in `edit_range` changed length by `delta`.

    Suggestions starting at or after `edit_range.end` move by `delta`; all
    others (before or overlapping the edit) are returned unchanged.
    """
    shifted: List[RedlineSuggestion] = []
    for suggestion in suggestions:
        if delta and suggestion.start_pos >= edit_range.end:
            suggestion = suggestion.model_copy(update={
                "start_pos": suggestion.start_pos + delta,
                "end_pos": suggestion.end_pos + delta,
            })
        shifted.append(suggestion)
    return shifted


@dataclass(frozen=True)
class RedlineFilter:
    """View predicate over suggestions; "all" disables a type/severity filter."""

    type: Union[SuggestionType, str] = ALL
    severity: Union[Severity, str] = ALL
    show_accepted: bool = False
    show_rejected: bool = False

    def matches(self, suggestion: RedlineSuggestion) -> bool:
        if self.type != ALL and suggestion.type != SuggestionType(self.type):
            return False
        if self.severity != ALL and suggestion.severity != Severity(self.severity):
            return False
        if not self.show_accepted and suggestion.status == SuggestionStatus.ACCEPTED:
            return False
        if not self.show_rejected and suggestion.status == SuggestionStatus.REJECTED:
            return False
        return True


def apply_filters(
    suggestions: Iterable[RedlineSuggestion],
    type: Union[SuggestionType, str] = ALL,
    severity: Union[Severity, str] = ALL,
    show_accepted: bool = False,
    show_rejected: bool = False,
) -> List[RedlineSuggestion]:
    """Return the suggestions visible under the given filters. Never mutates."""
    predicate = RedlineFilter(type, severity, show_accepted, show_rejected)
    return [s for s in suggestions if predicate.matches(s)]


# =============================================================================
# EVENTS
# =============================================================================


class RedlineEventKind(str, Enum):
    ATTACHED = "attached"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"
    NAVIGATED = "navigated"


@dataclass(frozen=True)
class RedlineEvent:
    """Notification delivered to store listeners after a state change."""

    kind: RedlineEventKind
    document_id: str
    suggestion_id: Optional[str] = None
    status: Optional[SuggestionStatus] = None
    content_changed: bool = False


RedlineListener = Callable[[RedlineEvent], None]

_STATUS_EVENTS = {
    SuggestionStatus.ACCEPTED: RedlineEventKind.ACCEPTED,
    SuggestionStatus.REJECTED: RedlineEventKind.REJECTED,
    SuggestionStatus.MODIFIED: RedlineEventKind.MODIFIED,
}


# =============================================================================
# STORE
# =============================================================================


class RedlineStore:
    """
    In-memory review state for one document.

    Usage:
        store = RedlineStore(document, persistence=JsonFilePersistence())
        unsubscribe = store.subscribe(print)
        store.accept("correction-0")
        store.navigate("next")
        visible = store.apply_filters(type="grammar")
        store.close()
    """

    def __init__(
        self,
        document: RedlineDocument,
        persistence: Optional[DocumentPersistence] = None,
        debounce_seconds: Optional[float] = None,
        listeners: Optional[Iterable[RedlineListener]] = None,
        phase_logger: Optional[PhaseLogger] = None,
        relocate_window: Optional[int] = None,
    ):
        if relocate_window is None:
            from config import config
            relocate_window = config.REDLINE.partial_match_window
        self._lock = threading.RLock()
        self._document_id = document.id
        self._original_content = document.original_content
        self._content = document.current_content
        self._metadata = document.metadata
        self._arena: Dict[str, RedlineSuggestion] = {}
        self._order: List[str] = []
        # Pending ids whose target text was overwritten by another edit
        self._invalidated: Set[str] = set()
        self._relocate_window = relocate_window
        self._current_index = 0
        self._selected_id: Optional[str] = None
        self._filter = RedlineFilter()
        self._listeners: List[RedlineListener] = list(listeners or [])
        self._saver = (
            DebouncedSaver(
                persistence, lambda: self.document, debounce_seconds, phase_logger=phase_logger
            )
            if persistence is not None else None
        )
        self._add_suggestions(document.suggestions)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def original_content(self) -> str:
        return self._original_content

    @property
    def content(self) -> str:
        with self._lock:
            return self._content

    @property
    def document(self) -> RedlineDocument:
        """Snapshot of the current state with recomputed metadata."""
        with self._lock:
            return RedlineDocument(
                id=self._document_id,
                original_content=self._original_content,
                current_content=self._content,
                suggestions=[self._arena[i] for i in self._order],
                metadata=self._metadata,
            ).with_recomputed_metadata()

    @property
    def suggestions(self) -> List[RedlineSuggestion]:
        with self._lock:
            return [self._arena[i] for i in self._order]

    @property
    def pending(self) -> List[RedlineSuggestion]:
        with self._lock:
            return [self._arena[i] for i in self._order if self._arena[i].is_pending]

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def current_index(self) -> int:
        return self._current_index

    def get(self, suggestion_id: str) -> RedlineSuggestion:
        with self._lock:
            try:
                return self._arena[suggestion_id]
            except KeyError:
                raise SuggestionNotFoundError(suggestion_id) from None

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: RedlineListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: RedlineEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Redline listener failed on {event.kind.value}: {e}")

    def _mutated(self, event: RedlineEvent) -> None:
        with self._lock:
            self._metadata = self._metadata.recomputed(
                [self._arena[i] for i in self._order], touch=True
            )
        self._emit(event)
        if self._saver is not None:
            self._saver.schedule()

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def _add_suggestions(self, suggestions: Iterable[RedlineSuggestion]) -> int:
        added = 0
        for suggestion in suggestions:
            if suggestion.id in self._arena:
                raise RedlineError(f"Duplicate suggestion id '{suggestion.id}'")
            self._arena[suggestion.id] = suggestion
            self._order.append(suggestion.id)
            added += 1
        return added

    def attach_suggestions(
        self,
        suggestions: Iterable[RedlineSuggestion],
        replace: bool = False,
    ) -> int:
        """
        Attach analysis suggestions to the document.

        Args:
            suggestions: New suggestions (ids must be unique in the store)
            replace: Drop existing suggestions first

        Returns:
            Number of suggestions attached
        """
        incoming = list(suggestions)
        with self._lock:
            ids = [s.id for s in incoming]
            clashes = set(ids) & (set() if replace else set(self._arena))
            if clashes or len(set(ids)) != len(ids):
                raise RedlineError(f"Duplicate suggestion ids: {sorted(clashes) or ids}")
            if replace:
                self._arena.clear()
                self._order.clear()
                self._invalidated.clear()
                self._current_index = 0
                self._selected_id = None
            added = self._add_suggestions(incoming)

        logger.info(f"Attached {added} suggestions to document {self._document_id}")
        self._mutated(RedlineEvent(RedlineEventKind.ATTACHED, self._document_id))
        return added

    def _require_pending(self, suggestion_id: str) -> RedlineSuggestion:
        suggestion = self.get(suggestion_id)
        if not suggestion.is_pending:
            raise SuggestionStateError(
                f"Suggestion '{suggestion_id}' is already {suggestion.status.value}"
            )
        return suggestion

    def _resolve_range(self, suggestion: RedlineSuggestion) -> TextRange:
        """
        Range of the suggestion's target in the current content.

        A stale range is only re-anchored to an exact occurrence of the
        original text, the one closest to the recorded start and no further
        than `relocate_window` characters from it. Targets overwritten by an
        earlier edit are never re-anchored.
        """
        start, end = suggestion.start_pos, suggestion.end_pos
        needle = suggestion.original_text
        if suggestion.id in self._invalidated:
            raise SuggestionLocateError(
                f"Text for suggestion '{suggestion.id}' was changed by another edit: "
                f"{needle[:60]!r}"
            )
        if end <= len(self._content) and self._content[start:end] == needle:
            return TextRange(start, end)

        logger.debug(
            f"Suggestion {suggestion.id} no longer matches [{start}, {end}); re-locating"
        )
        best: Optional[int] = None
        if needle:
            lo = max(0, start - self._relocate_window)
            hi = start + self._relocate_window
            found = self._content.find(needle, lo)
            while found != -1 and found <= hi:
                if best is None or abs(found - start) < abs(best - start):
                    best = found
                found = self._content.find(needle, found + 1)
        if best is None:
            raise SuggestionLocateError(
                f"Could not locate text for suggestion '{suggestion.id}' within "
                f"{self._relocate_window} chars of {start}: {needle[:60]!r}"
            )
        return TextRange(best, best + len(needle))

    def _apply_edit(
        self,
        suggestion_id: str,
        replacement: str,
        status: SuggestionStatus,
    ) -> RedlineSuggestion:
        with self._lock:
            suggestion = self._require_pending(suggestion_id)
            edit_range = self._resolve_range(suggestion)
            delta = len(replacement) - edit_range.length

            self._content = (
                self._content[:edit_range.start] + replacement + self._content[edit_range.end:]
            )
            others = [self._arena[i] for i in self._order if i != suggestion_id]
            for other in others:
                if (
                    other.is_pending
                    and other.start_pos < edit_range.end
                    and edit_range.start < other.end_pos
                ):
                    self._invalidated.add(other.id)
            for shifted in shift_offsets(others, edit_range, delta):
                self._arena[shifted.id] = shifted

            update = {
                "status": status,
                "start_pos": edit_range.start,
                "end_pos": edit_range.start + len(replacement),
            }
            if status == SuggestionStatus.MODIFIED:
                update["modified_text"] = replacement
            updated = suggestion.model_copy(update=update)
            self._arena[suggestion_id] = updated

        logger.info(
            f"Suggestion {suggestion_id} {status.value}: [{edit_range.start}, {edit_range.end}) "
            f"replaced, delta {delta:+d}"
        )
        self._mutated(RedlineEvent(
            _STATUS_EVENTS[status], self._document_id, suggestion_id, status,
            content_changed=True,
        ))
        return updated

    def accept(self, suggestion_id: str) -> RedlineSuggestion:
        """Apply the suggested text and mark the suggestion accepted."""
        suggestion = self.get(suggestion_id)
        return self._apply_edit(suggestion_id, suggestion.suggested_text, SuggestionStatus.ACCEPTED)

    def modify(self, suggestion_id: str, text: str) -> RedlineSuggestion:
        """Apply user-supplied text and mark the suggestion modified."""
        return self._apply_edit(suggestion_id, text, SuggestionStatus.MODIFIED)

    def reject(self, suggestion_id: str) -> RedlineSuggestion:
        """Mark the suggestion rejected. Content and other ranges are untouched."""
        with self._lock:
            suggestion = self._require_pending(suggestion_id)
            updated = suggestion.model_copy(update={"status": SuggestionStatus.REJECTED})
            self._arena[suggestion_id] = updated

        logger.info(f"Suggestion {suggestion_id} rejected")
        self._mutated(RedlineEvent(
            RedlineEventKind.REJECTED, self._document_id, suggestion_id, SuggestionStatus.REJECTED,
        ))
        return updated

    # -------------------------------------------------------------------------
    # Navigation and filters
    # -------------------------------------------------------------------------

    def _step(self, pending_ids: List[str], target: str) -> int:
        last = len(pending_ids) - 1
        if self._selected_id is None:
            return 0 if target == "next" else min(self._current_index, last)
        if self._selected_id in pending_ids:
            current = pending_ids.index(self._selected_id)
            if target == "next":
                return min(current + 1, last)
            return max(current - 1, 0)
        # Selected item is no longer pending: step from its place in document order
        position = {sid: n for n, sid in enumerate(self._order)}
        anchor = position[self._selected_id]
        if target == "next":
            after = [n for n, sid in enumerate(pending_ids) if position[sid] > anchor]
            return after[0] if after else last
        before = [n for n, sid in enumerate(pending_ids) if position[sid] < anchor]
        return before[-1] if before else 0

    def navigate(self, target: str) -> Optional[str]:
        """
        Move the selection among pending suggestions.

        Args:
            target: "next", "prev" or a suggestion id

        Returns:
            The selected suggestion id (None when nothing is pending)

        "next"/"prev" clamp at either end; there is no wraparound. From a
        selection that is no longer pending they move to the nearest pending
        suggestion after or before it.
        """
        with self._lock:
            pending_ids = [i for i in self._order if self._arena[i].is_pending]
            if target in ("next", "prev"):
                if not pending_ids:
                    self._current_index = 0
                    self._selected_id = None
                else:
                    self._current_index = self._step(pending_ids, target)
                    self._selected_id = pending_ids[self._current_index]
            else:
                self.get(target)
                self._selected_id = target
                if target in pending_ids:
                    self._current_index = pending_ids.index(target)
            selected = self._selected_id

        self._emit(RedlineEvent(RedlineEventKind.NAVIGATED, self._document_id, selected))
        return selected

    @property
    def active_filter(self) -> RedlineFilter:
        return self._filter

    def apply_filters(
        self,
        type: Union[SuggestionType, str] = ALL,
        severity: Union[Severity, str] = ALL,
        show_accepted: bool = False,
        show_rejected: bool = False,
    ) -> List[RedlineSuggestion]:
        """Set the active view filter and return the visible suggestions."""
        self._filter = RedlineFilter(type, severity, show_accepted, show_rejected)
        return self.filtered_suggestions

    @property
    def filtered_suggestions(self) -> List[RedlineSuggestion]:
        return [s for s in self.suggestions if self._filter.matches(s)]

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def flush(self) -> bool:
        """Write a pending auto-save now. Returns True if one was pending."""
        if self._saver is None:
            return False
        return self._saver.flush()

    def close(self) -> None:
        if self._saver is not None:
            self._saver.close()
