"""
Redline Models - Data structures for anchoring, reconciliation and review.

This module defines the core data models used throughout the redline system:

Addressing Types:
- AnchorEntry: A paragraph anchor inside anchored text
- PositionMapEntry: One plain-text character and its HTML offset
- TextRange: A half-open character range

Reconciliation Types:
- Correction: An anchor-relative correction proposed by a model
- CorrectionStatus: Per-item reconciliation outcome
- CorrectionOutcome: What happened to one correction
- ReconciliationResult: Corrected text plus per-item outcomes

Review Types (persisted shape uses camelCase aliases):
- SuggestionType / Severity / SuggestionStatus
- RedlineSuggestion: A reviewable edit with lifecycle status
- RedlineMetadata: Counts always recomputed from the suggestion list
- RedlineDocument: Baseline content, current content and suggestions

Errors:
- RedlineError and its subclasses
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator


# =============================================================================
# ERRORS
# =============================================================================


class RedlineError(Exception):
    """Base class for errors raised by the redline core."""


class AnchoringError(RedlineError):
    """Raised when anchored text is structurally invalid."""


class SuggestionNotFoundError(RedlineError, KeyError):
    """Raised when a suggestion id is not present in the store."""


class SuggestionStateError(RedlineError):
    """Raised when acting on a suggestion that is no longer pending."""


class SuggestionLocateError(RedlineError):
    """Raised when a suggestion's target text cannot be found in the content."""


class PayloadParseError(RedlineError):
    """Raised by the strict payload helper when a payload is not a correction array."""


# =============================================================================
# ADDRESSING
# =============================================================================


@dataclass(frozen=True)
class AnchorEntry:
    """
    A paragraph anchor inside anchored text.

    Attributes:
        anchor_id: Anchor id without delimiters, e.g. "P-00001"
        number: Numeric anchor id (1-based, gap-free)
        paragraph_index: Index of the paragraph among all split paragraphs,
            including the short ones that received no anchor
        absolute_offset: Offset in the anchored text of the paragraph's first
            character (immediately after the token)
        token_offset: Offset in the anchored text where the token starts
    """

    anchor_id: str
    number: int
    paragraph_index: int
    absolute_offset: int
    token_offset: int


@dataclass(frozen=True)
class PositionMapEntry:
    """One visible plain-text character and where it lives in the HTML."""

    plain_text_pos: int
    html_pos: int
    is_entity: bool = False
    entity_length: int = 0

    @property
    def html_start(self) -> int:
        """HTML offset where this character's source begins."""
        if self.is_entity:
            return self.html_pos - self.entity_length
        return self.html_pos

    @property
    def html_end(self) -> int:
        """HTML offset right after this character's source."""
        if self.is_entity:
            return self.html_pos
        return self.html_pos + 1


@dataclass(frozen=True)
class TextRange:
    """Half-open character range [start, end)."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}


# =============================================================================
# RECONCILIATION
# =============================================================================


class RedlineBaseModel(BaseModel):
    """Base model enabling population by field name as well as by alias."""
    model_config = {"populate_by_name": True}


class Correction(RedlineBaseModel):
    """
    A correction proposed against anchored text.

    Offsets are local to the anchor: offset 0 is the first character of the
    anchored paragraph. Payload field names (`orig`, `start_offset`) and the
    Python names are both accepted.
    """

    anchor: str = Field(..., min_length=1, description="Anchor id, e.g. 'P-00001'")
    start_offset: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("start_offset", "startOffset"),
        description="Start offset relative to the anchor",
    )
    end_offset: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("end_offset", "endOffset"),
        description="End offset (exclusive) relative to the anchor",
    )
    original: str = Field(
        ...,
        validation_alias=AliasChoices("orig", "original"),
        description="Text expected at the resolved range",
    )
    suggested: str = Field(..., description="Replacement text")
    explanation: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    errors: List[Any] = Field(default_factory=list)

    @field_validator("anchor", mode="before")
    @classmethod
    def _coerce_anchor(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _check_offsets(self) -> "Correction":
        if self.end_offset < self.start_offset:
            raise ValueError(
                f"end_offset ({self.end_offset}) precedes start_offset ({self.start_offset})"
            )
        return self

    @property
    def length_delta(self) -> int:
        """Net change in character count when applied."""
        return len(self.suggested) - len(self.original)


class CorrectionStatus(str, Enum):
    """Outcome of reconciling one correction."""

    APPLIED = "applied"
    VALIDATION_MISMATCH = "validation_mismatch"
    ANCHOR_NOT_FOUND = "anchor_not_found"
    CONFLICTING_RANGE = "conflicting_range"
    MALFORMED = "malformed"


@dataclass
class CorrectionOutcome:
    """
    What happened to one correction of a batch.

    Attributes:
        index: Position of the item in the input batch
        status: Reconciliation outcome
        correction: Validated correction, None when the item was malformed
        absolute_start/absolute_end: Range in the anchored input text
        effective_start/effective_end: Range of the replacement in the
            corrected output (only for applied corrections)
        message: Human-readable reason for failures
    """

    index: int
    status: CorrectionStatus
    correction: Optional[Correction] = None
    absolute_start: Optional[int] = None
    absolute_end: Optional[int] = None
    effective_start: Optional[int] = None
    effective_end: Optional[int] = None
    message: str = ""

    @property
    def applied(self) -> bool:
        return self.status == CorrectionStatus.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status.value,
            "anchor": self.correction.anchor if self.correction else None,
            "absolute": (
                {"start": self.absolute_start, "end": self.absolute_end}
                if self.absolute_start is not None else None
            ),
            "effective": (
                {"start": self.effective_start, "end": self.effective_end}
                if self.effective_start is not None else None
            ),
            "message": self.message,
        }


@dataclass
class ReconciliationResult:
    """
    Result of reconciling one batch of corrections.

    `success` is False only when the whole payload could not be parsed;
    per-item failures are a normal outcome and live in `outcomes`.
    """

    original_text: str
    corrected_text: str
    outcomes: List[CorrectionOutcome] = field(default_factory=list)
    anchor_offsets: Dict[str, int] = field(default_factory=dict)
    parse_failure: Optional[Any] = None
    execution_time_ms: int = 0

    @property
    def success(self) -> bool:
        return self.parse_failure is None

    @property
    def applied(self) -> List[CorrectionOutcome]:
        return [o for o in self.outcomes if o.applied]

    @property
    def failed(self) -> List[CorrectionOutcome]:
        return [o for o in self.outcomes if not o.applied]

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def char_delta(self) -> int:
        return len(self.corrected_text) - len(self.original_text)

    def effective_offset(self, anchor: str) -> Optional[int]:
        """Offset of an anchored paragraph in the corrected text."""
        from .anchors import normalize_anchor_id

        anchor_id = normalize_anchor_id(anchor)
        if anchor_id is None:
            return None
        return self.anchor_offsets.get(anchor_id)

    def counts_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in CorrectionStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "corrected_text": self.corrected_text,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "parse_failure": (
                self.parse_failure.to_dict() if self.parse_failure is not None else None
            ),
            "execution_time_ms": self.execution_time_ms,
            "stats": {
                "applied": self.applied_count,
                "failed": self.failed_count,
                "char_delta": self.char_delta,
                "by_status": self.counts_by_status(),
            },
        }


# =============================================================================
# REVIEW (REDLINE) MODELS
# =============================================================================


class SuggestionType(str, Enum):
    """Category of a redline suggestion."""
    GRAMMAR = "grammar"
    STYLE = "style"
    LEGAL = "legal"
    CLARITY = "clarity"


class Severity(str, Enum):
    """How urgent a suggestion is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SuggestionStatus(str, Enum):
    """Lifecycle status; every non-pending status is terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MODIFIED = "modified"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class RedlineSuggestion(RedlineBaseModel):
    """
    A proposed edit addressed by an absolute range of the current content.

    `start_pos`/`end_pos` always refer to the document's current content as
    it exists after all previously applied suggestions.
    """

    id: str
    type: SuggestionType = SuggestionType.GRAMMAR
    severity: Severity = Severity.MEDIUM
    original_text: str = Field(default="", alias="originalText")
    suggested_text: str = Field(default="", alias="suggestedText")
    explanation: str = ""
    start_pos: int = Field(default=0, ge=0, alias="startPos")
    end_pos: int = Field(default=0, ge=0, alias="endPos")
    paragraph_id: str = Field(default="", alias="paragraphId")
    status: SuggestionStatus = SuggestionStatus.PENDING
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    modified_text: Optional[str] = Field(
        default=None,
        alias="modifiedText",
        description="User-supplied replacement when status is 'modified'",
    )

    @model_validator(mode="after")
    def _check_range(self) -> "RedlineSuggestion":
        if self.end_pos < self.start_pos:
            raise ValueError(
                f"endPos ({self.end_pos}) precedes startPos ({self.start_pos})"
            )
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == SuggestionStatus.PENDING

    @property
    def range(self) -> TextRange:
        return TextRange(self.start_pos, self.end_pos)


class RedlineMetadata(RedlineBaseModel):
    """Document metadata. Counts are derived, never tracked incrementally."""

    file_name: str = Field(default="Untitled Document", alias="fileName")
    file_type: str = Field(default="text/plain", alias="fileType")
    last_modified: str = Field(default_factory=utc_timestamp, alias="lastModified")
    total_suggestions: int = Field(default=0, alias="totalSuggestions")
    accepted_suggestions: int = Field(default=0, alias="acceptedSuggestions")
    rejected_suggestions: int = Field(default=0, alias="rejectedSuggestions")
    modified_suggestions: int = Field(default=0, alias="modifiedSuggestions")

    def recomputed(
        self,
        suggestions: Sequence[RedlineSuggestion],
        touch: bool = False,
    ) -> "RedlineMetadata":
        """Return a copy whose counts are recomputed from `suggestions`."""
        update: Dict[str, Any] = {
            "total_suggestions": len(suggestions),
            "accepted_suggestions": sum(
                1 for s in suggestions if s.status == SuggestionStatus.ACCEPTED
            ),
            "rejected_suggestions": sum(
                1 for s in suggestions if s.status == SuggestionStatus.REJECTED
            ),
            "modified_suggestions": sum(
                1 for s in suggestions if s.status == SuggestionStatus.MODIFIED
            ),
        }
        if touch:
            update["last_modified"] = utc_timestamp()
        return self.model_copy(update=update)


class RedlineDocument(RedlineBaseModel):
    """
    A document under review.

    `original_content` is the immutable baseline; only `current_content` and
    the suggestions change after creation.
    """

    id: str
    original_content: str = Field(..., alias="originalContent")
    current_content: str = Field(..., alias="currentContent")
    suggestions: List[RedlineSuggestion] = Field(default_factory=list)
    metadata: RedlineMetadata = Field(default_factory=RedlineMetadata)

    def with_recomputed_metadata(self, touch: bool = False) -> "RedlineDocument":
        return self.model_copy(
            update={"metadata": self.metadata.recomputed(self.suggestions, touch=touch)}
        )

    def to_persisted_dict(self) -> Dict[str, Any]:
        """Storage shape: camelCase keys, metadata recomputed on every save."""
        return self.with_recomputed_metadata().model_dump(by_alias=True, mode="json")

    @classmethod
    def from_persisted_dict(cls, data: Dict[str, Any]) -> "RedlineDocument":
        return cls.model_validate(data).with_recomputed_metadata()
