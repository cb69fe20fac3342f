"""
Redline Reconciler - Apply anchor-relative corrections to anchored text.

For each correction:

1. Validate the item shape (malformed items are reported, never raised).
2. Resolve the anchor; absolute range = anchor offset + local offsets.
3. Require the text at the absolute range to equal `original` exactly.

Resolved corrections are applied in ascending absolute order against one
output buffer with a running length delta. A correction whose range starts
before the end of the previously applied one is reported as a conflicting
range and skipped. Outcomes are returned in input order.

`reconcile_corrections` is pure. `CorrectionReconciler` wraps it for one
document: it serializes batches with a lock and commits each batch's output
before the next batch may start.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import nullcontext
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from logging_utils import Phase, PhaseLogger

from .anchors import AnchorMap, build_anchor_map
from .models import (
    Correction,
    CorrectionOutcome,
    CorrectionStatus,
    ReconciliationResult,
)
from .payload_parser import PayloadParseFailure, parse_correction_payload

logger = logging.getLogger(__name__)


def _validate_item(item: Any) -> Tuple[Optional[Correction], str]:
    """Return (correction, "") or (None, reason)."""
    if isinstance(item, Correction):
        return item, ""
    if not isinstance(item, dict):
        return None, f"Item is {type(item).__name__}, expected an object"
    try:
        return Correction.model_validate(item), ""
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'item'}: {err['msg']}"
            for err in e.errors()
        )
        return None, f"Invalid correction: {details}"


def _anchor_offsets_after(
    anchor_map: AnchorMap,
    applied: Sequence[Tuple[int, int]],
) -> dict:
    """
    Effective offset of every anchor after the batch.

    `applied` holds (absolute_start, length_delta) sorted by start. Only
    corrections starting before an anchor's paragraph shift it.
    """
    offsets = {}
    cursor = 0
    shift = 0
    for entry in anchor_map:
        while cursor < len(applied) and applied[cursor][0] < entry.absolute_offset:
            shift += applied[cursor][1]
            cursor += 1
        offsets[entry.anchor_id] = entry.absolute_offset + shift
    return offsets


def reconcile_corrections(
    anchored_text: str,
    corrections: Sequence[Any],
    anchor_map: Optional[AnchorMap] = None,
) -> ReconciliationResult:
    """
    Resolve and apply a batch of corrections.

    Args:
        anchored_text: Text carrying anchor tokens
        corrections: Correction models or raw payload dicts
        anchor_map: Map for `anchored_text` (rebuilt from tokens when omitted)

    Returns:
        ReconciliationResult with per-item outcomes in input order
    """
    start_time = time.perf_counter()
    if anchor_map is None:
        anchor_map = build_anchor_map(anchored_text)

    outcomes: List[Optional[CorrectionOutcome]] = [None] * len(corrections)
    resolved: List[Tuple[int, int, int, Correction]] = []

    for index, item in enumerate(corrections):
        correction, error = _validate_item(item)
        if correction is None:
            logger.warning(f"Correction #{index} malformed: {error}")
            outcomes[index] = CorrectionOutcome(
                index=index, status=CorrectionStatus.MALFORMED, message=error
            )
            continue

        entry = anchor_map.get(correction.anchor)
        if entry is None:
            message = f"Anchor '{correction.anchor}' not found"
            logger.warning(f"Correction #{index}: {message}")
            outcomes[index] = CorrectionOutcome(
                index=index,
                status=CorrectionStatus.ANCHOR_NOT_FOUND,
                correction=correction,
                message=message,
            )
            continue

        abs_start = entry.absolute_offset + correction.start_offset
        abs_end = entry.absolute_offset + correction.end_offset
        if abs_end > len(anchored_text):
            message = f"Range [{abs_start}, {abs_end}) exceeds text length {len(anchored_text)}"
        elif anchored_text[abs_start:abs_end] != correction.original:
            message = (
                f"Expected {correction.original[:40]!r} at [{abs_start}, {abs_end}), "
                f"found {anchored_text[abs_start:abs_end][:40]!r}"
            )
        else:
            message = ""

        if message:
            logger.warning(f"Correction #{index} ({entry.anchor_id}) mismatch: {message}")
            outcomes[index] = CorrectionOutcome(
                index=index,
                status=CorrectionStatus.VALIDATION_MISMATCH,
                correction=correction,
                absolute_start=abs_start,
                absolute_end=abs_end,
                message=message,
            )
            continue

        resolved.append((abs_start, index, abs_end, correction))

    resolved.sort(key=lambda r: (r[0], r[1]))

    parts: List[str] = []
    cursor = 0
    delta = 0
    previous_end = -1
    applied: List[Tuple[int, int]] = []

    for abs_start, index, abs_end, correction in resolved:
        if abs_start < previous_end:
            message = f"Range [{abs_start}, {abs_end}) overlaps a correction ending at {previous_end}"
            logger.warning(f"Correction #{index} conflicting: {message}")
            outcomes[index] = CorrectionOutcome(
                index=index,
                status=CorrectionStatus.CONFLICTING_RANGE,
                correction=correction,
                absolute_start=abs_start,
                absolute_end=abs_end,
                message=message,
            )
            continue

        parts.append(anchored_text[cursor:abs_start])
        parts.append(correction.suggested)
        cursor = abs_end
        previous_end = abs_end

        effective_start = abs_start + delta
        outcomes[index] = CorrectionOutcome(
            index=index,
            status=CorrectionStatus.APPLIED,
            correction=correction,
            absolute_start=abs_start,
            absolute_end=abs_end,
            effective_start=effective_start,
            effective_end=effective_start + len(correction.suggested),
        )
        applied.append((abs_start, correction.length_delta))
        delta += correction.length_delta

    parts.append(anchored_text[cursor:])
    corrected = "".join(parts)

    result = ReconciliationResult(
        original_text=anchored_text,
        corrected_text=corrected,
        outcomes=[o for o in outcomes if o is not None],
        anchor_offsets=_anchor_offsets_after(anchor_map, applied),
        execution_time_ms=int((time.perf_counter() - start_time) * 1000),
    )
    logger.info(
        f"Reconciled {len(corrections)} corrections: {result.applied_count} applied, "
        f"{result.failed_count} failed (delta {delta:+d} chars)"
    )
    return result


def reconcile_payload(
    anchored_text: str,
    raw_payload: Any,
    anchor_map: Optional[AnchorMap] = None,
) -> ReconciliationResult:
    """
    Parse a raw model payload and reconcile it.

    A payload that is not a correction array yields a result with
    `success == False`, no outcomes and the text unchanged.
    """
    parsed = parse_correction_payload(raw_payload)
    if isinstance(parsed, PayloadParseFailure):
        logger.error(f"Correction payload parse failure: {parsed.reason}")
        return ReconciliationResult(
            original_text=anchored_text,
            corrected_text=anchored_text,
            parse_failure=parsed,
        )
    return reconcile_corrections(anchored_text, parsed.items, anchor_map)


def render_correction_markup(result: ReconciliationResult) -> str:
    """
    Render applied corrections as inline `[DELETED: x] [INSERTED: y]` markup.

    Built on the batch's input text, so failed items leave no trace.
    """
    parts: List[str] = []
    cursor = 0
    text = result.original_text
    for outcome in sorted(result.applied, key=lambda o: (o.absolute_start, o.index)):
        parts.append(text[cursor:outcome.absolute_start])
        parts.append(
            f"[DELETED: {outcome.correction.original}] "
            f"[INSERTED: {outcome.correction.suggested}]"
        )
        cursor = outcome.absolute_end
    parts.append(text[cursor:])
    return "".join(parts)


class CorrectionReconciler:
    """
    Reconciler bound to one document.

    Batches are serialized: a batch runs to completion and its corrected
    text (with a rebuilt anchor map) becomes the document text before the
    next batch can start.

    Usage:
        reconciler = CorrectionReconciler(anchored_text, document_id="doc-42")
        result = reconciler.reconcile_payload(model_output)
        reconciler.text  # corrected anchored text
    """

    def __init__(
        self,
        anchored_text: str,
        anchor_map: Optional[AnchorMap] = None,
        phase_logger: Optional[PhaseLogger] = None,
        document_id: str = "",
    ):
        self.document_id = document_id
        self.phase_logger = phase_logger
        self._lock = threading.Lock()
        self._text = anchored_text
        self._anchor_map = anchor_map if anchor_map is not None else build_anchor_map(anchored_text)
        self.history: List[ReconciliationResult] = []

    @property
    def text(self) -> str:
        return self._text

    @property
    def anchor_map(self) -> AnchorMap:
        return self._anchor_map

    def _phase(self, label: str):
        if self.phase_logger is None:
            return nullcontext()
        return self.phase_logger.phase(Phase.RECONCILIATION, sub_label=label)

    def _commit(self, result: ReconciliationResult) -> None:
        self.history.append(result)
        if self.phase_logger is not None:
            self.phase_logger.log_batch_summary(result.counts_by_status())
        if result.applied_count:
            self._text = result.corrected_text
            self._anchor_map = build_anchor_map(result.corrected_text)

    def reconcile(self, corrections: Sequence[Any]) -> ReconciliationResult:
        """Apply one batch of corrections (models or raw dicts) and commit it."""
        with self._lock:
            with self._phase(f"{len(corrections)} corrections"):
                result = reconcile_corrections(self._text, corrections, self._anchor_map)
                self._commit(result)
        return result

    def reconcile_payload(self, raw_payload: Any) -> ReconciliationResult:
        """Parse a raw model payload and apply it as one batch."""
        with self._lock:
            with self._phase(f"payload {self.document_id}".strip()):
                result = reconcile_payload(self._text, raw_payload, self._anchor_map)
                if result.parse_failure is not None and self.phase_logger is not None:
                    self.phase_logger.error(
                        f"Payload rejected: {result.parse_failure.reason}"
                    )
                self._commit(result)
        return result
