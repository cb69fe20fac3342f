"""
Redline Payload Parser - Tolerant parsing of model correction payloads.

A correction payload should be a JSON array of correction objects, but
models wrap it in markdown fences, nest it in an object or surround it with
prose. `parse_correction_payload` tries each shape in order and returns a
typed variant; it never raises:

- ParsedPayload(items, schema) on success
- PayloadParseFailure(reason, raw_preview) when no shape matched

Item-level validation (required fields, offsets) is the reconciler's job;
the parser only guarantees that `items` is a list.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import json_utils as json

from .models import PayloadParseError

logger = logging.getLogger(__name__)

# Keys under which models nest the correction array
WRAPPER_KEYS = ("corrections", "citations", "items", "issues")

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n?([\s\S]*?)\n?```")
_OUTERMOST_ARRAY = re.compile(r"\[[\s\S]*\]")

PREVIEW_CHARS = 200


class PayloadSchema(str, Enum):
    """Which payload shape was recognized."""

    ARRAY = "array"
    WRAPPED = "wrapped"
    FENCED = "fenced"
    EXTRACTED = "extracted"


@dataclass
class ParsedPayload:
    """A payload that yielded a list of raw correction items."""

    items: List[Any] = field(default_factory=list)
    schema: PayloadSchema = PayloadSchema.ARRAY

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class PayloadParseFailure:
    """A payload that is not a well-formed correction array."""

    reason: str
    raw_preview: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason, "raw_preview": self.raw_preview}


PayloadParseOutcome = Union[ParsedPayload, PayloadParseFailure]


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."


def _decode(text: str) -> Tuple[Any, bool]:
    try:
        return json.loads(text), True
    except json.JSONDecodeError:
        return None, False


def _unwrap(data: Any) -> Optional[List[Any]]:
    """Return the correction list held by `data`, or None."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return None


def _describe(data: Any) -> str:
    if isinstance(data, dict):
        return f"object without a correction array (keys: {sorted(data)[:5]})"
    return f"{type(data).__name__}, not an array"


def parse_correction_payload(raw: Any) -> PayloadParseOutcome:
    """
    Parse a correction payload.

    Args:
        raw: Model output (str or bytes), or an already-decoded list

    Returns:
        ParsedPayload or PayloadParseFailure

    Example:
        >>> parse_correction_payload('```json\\n[{"anchor": "P-00001"}]\\n```').schema
        <PayloadSchema.FENCED: 'fenced'>
    """
    if isinstance(raw, list):
        return ParsedPayload(items=list(raw), schema=PayloadSchema.ARRAY)
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        return PayloadParseFailure(
            reason=f"Unsupported payload type {type(raw).__name__}",
            raw_preview=_preview(repr(raw)),
        )

    text = raw.strip()
    if not text:
        return PayloadParseFailure(reason="Payload is empty")

    # Direct JSON (array, or object wrapping one)
    data, ok = _decode(text)
    if ok:
        items = _unwrap(data)
        if items is None:
            return PayloadParseFailure(
                reason=f"Top-level JSON value is {_describe(data)}",
                raw_preview=_preview(text),
            )
        schema = PayloadSchema.ARRAY if isinstance(data, list) else PayloadSchema.WRAPPED
        return ParsedPayload(items=items, schema=schema)

    # Markdown fenced block
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        data, ok = _decode(fenced.group(1).strip())
        if ok:
            items = _unwrap(data)
            if items is not None:
                return ParsedPayload(items=items, schema=PayloadSchema.FENCED)
            logger.debug(f"Fenced block decoded to {_describe(data)}")

    # Heuristic: outermost bracketed span
    span = _OUTERMOST_ARRAY.search(text)
    if span:
        data, ok = _decode(span.group())
        if ok and isinstance(data, list):
            logger.debug(f"Correction array extracted heuristically ({len(data)} items)")
            return ParsedPayload(items=data, schema=PayloadSchema.EXTRACTED)

    return PayloadParseFailure(
        reason="No JSON correction array found in payload",
        raw_preview=_preview(text),
    )


def parse_payload_or_raise(raw: Any) -> List[Any]:
    """
    Strict variant of `parse_correction_payload`.

    Raises:
        PayloadParseError: When the payload is not a correction array
    """
    outcome = parse_correction_payload(raw)
    if isinstance(outcome, PayloadParseFailure):
        raise PayloadParseError(outcome.reason)
    return outcome.items
