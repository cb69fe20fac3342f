"""
Redline Converters - Turn analysis output into reviewable suggestions.

Three sources feed the review store:

- Reconciled corrections (applied outcomes of a correction batch)
- Grammar analysis output: ``analysis[].suggestions[]`` per paragraph
- Citation finder output: one finding per detected citation

All converters return pending `RedlineSuggestion` objects addressed in the
coordinates of the raw (unanchored) document text.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Type, TypeVar

from pydantic import ValidationError

from .anchors import AnchorMap, build_anchor_map
from .locators import locate_text
from .models import (
    ReconciliationResult,
    RedlineDocument,
    RedlineMetadata,
    RedlineSuggestion,
    Severity,
    SuggestionType,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_cls: Type[E], value: Any, default: E) -> E:
    """Map a loose string onto an enum member, falling back to `default`."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    return default


def _default_confidence() -> float:
    from config import config
    return config.REDLINE.default_confidence


# =============================================================================
# RECONCILED CORRECTIONS
# =============================================================================


def suggestions_from_reconciliation(
    result: ReconciliationResult,
    anchor_map: Optional[AnchorMap] = None,
    default_type: SuggestionType = SuggestionType.GRAMMAR,
    id_prefix: str = "correction",
) -> List[RedlineSuggestion]:
    """
    Convert applied corrections into pending suggestions.

    Ranges are translated from the anchored batch input to the raw text, so
    the suggestions address the document as the user sees it.

    Args:
        result: Reconciliation result of one batch
        anchor_map: Map of `result.original_text` (rebuilt when omitted)
        default_type: Type used when a correction carries none (or an unknown one)
        id_prefix: Prefix for generated suggestion ids
    """
    if anchor_map is None:
        anchor_map = build_anchor_map(result.original_text)

    confidence = _default_confidence()
    suggestions: List[RedlineSuggestion] = []
    for outcome in result.applied:
        correction = outcome.correction
        suggestions.append(RedlineSuggestion(
            id=f"{id_prefix}-{outcome.index}",
            type=_coerce_enum(SuggestionType, correction.type, default_type),
            severity=Severity.MEDIUM,
            original_text=correction.original,
            suggested_text=correction.suggested,
            explanation=correction.explanation or "",
            start_pos=anchor_map.to_plain_offset(outcome.absolute_start),
            end_pos=anchor_map.to_plain_offset(outcome.absolute_end),
            paragraph_id=anchor_map.get(correction.anchor).anchor_id,
            confidence=confidence,
        ))

    logger.info(f"Created {len(suggestions)} suggestions from {len(result.outcomes)} corrections")
    return suggestions


# =============================================================================
# GRAMMAR ANALYSIS
# =============================================================================


def _analysis_paragraphs(analysis: Any) -> List[Mapping[str, Any]]:
    """Accept the paragraph list itself or a module result wrapping it."""
    if isinstance(analysis, list):
        return analysis
    if isinstance(analysis, Mapping):
        if isinstance(analysis.get("analysis"), list):
            return analysis["analysis"]
        output = analysis.get("output")
        if isinstance(output, Mapping) and isinstance(output.get("analysis"), list):
            return output["analysis"]
    return []


def suggestions_from_grammar_analysis(
    analysis: Any,
    content: str,
) -> List[RedlineSuggestion]:
    """
    Convert grammar module output into suggestions located in `content`.

    Each suggestion's original text is located with the text locator.
    Suggestions that cannot be located get an empty ``[0, 0)`` range and a
    warning. Items failing validation (e.g. confidence outside 0..1) are
    logged and skipped.
    """
    confidence_default = _default_confidence()
    suggestions: List[RedlineSuggestion] = []

    for paragraph_index, paragraph in enumerate(_analysis_paragraphs(analysis)):
        if not isinstance(paragraph, Mapping):
            continue
        paragraph_id = paragraph.get("paragraphId") or f"paragraph-{paragraph_index}"
        for index, item in enumerate(paragraph.get("suggestions") or []):
            if not isinstance(item, Mapping):
                continue
            original_text = (item.get("originalText") or item.get("issue") or "").strip()
            start, end = 0, 0
            if original_text:
                match = locate_text(content, original_text)
                if match:
                    start, end = match.start, match.end
                else:
                    logger.warning(
                        f"Grammar suggestion {paragraph_id}-{index} could not be located: "
                        f"'{original_text[:40]}'"
                    )
            else:
                logger.warning(f"Grammar suggestion {paragraph_id}-{index} has no original text")

            confidence = item.get("confidence")
            if confidence is None:
                confidence = confidence_default
            try:
                suggestion = RedlineSuggestion(
                    id=f"{paragraph.get('paragraphId') or paragraph_index}-{index}",
                    type=_coerce_enum(SuggestionType, item.get("type"), SuggestionType.GRAMMAR),
                    severity=_coerce_enum(Severity, item.get("severity"), Severity.MEDIUM),
                    original_text=original_text,
                    suggested_text=item.get("suggestedText") or item.get("suggestion") or "",
                    explanation=(
                        item.get("explanation") or item.get("description")
                        or "No explanation provided"
                    ),
                    start_pos=start,
                    end_pos=end,
                    paragraph_id=paragraph_id,
                    confidence=confidence,
                )
            except ValidationError as e:
                logger.warning(
                    f"Skipping grammar suggestion {paragraph_id}-{index}: "
                    f"{e.error_count()} invalid field(s)"
                )
                continue
            suggestions.append(suggestion)

    logger.info(f"Created {len(suggestions)} suggestions from grammar analysis")
    return suggestions


# =============================================================================
# CITATIONS
# =============================================================================


def _citation_explanation(finding: Mapping[str, Any]) -> str:
    original_text = finding.get("originalText", "")
    bluebook = finding.get("bluebookFormat")
    explanation = f"Bluebook citation detected: {finding.get('type', 'case')}"
    if bluebook and bluebook != original_text:
        explanation += f" (Suggested format: {bluebook})"
    if finding.get("needsVerification"):
        explanation += " - Requires verification"
    if not finding.get("isComplete", True):
        explanation += " - Incomplete citation"
    return explanation


def suggestions_from_citations(
    findings: Iterable[Mapping[str, Any]],
    document_id: str = "citation-analysis",
) -> List[RedlineSuggestion]:
    """
    Convert citation findings into `legal` suggestions.

    Severity: low by default, medium when the citation needs verification,
    high when it is incomplete. Complete citations get confidence 0.9,
    incomplete ones 0.7.
    """
    suggestions: List[RedlineSuggestion] = []
    for index, finding in enumerate(findings):
        is_complete = bool(finding.get("isComplete", True))
        severity = Severity.LOW
        if finding.get("needsVerification"):
            severity = Severity.MEDIUM
        if not is_complete:
            severity = Severity.HIGH

        original_text = finding.get("originalText", "")
        bluebook = finding.get("bluebookFormat")
        suggested_text = bluebook if bluebook and bluebook != original_text else original_text

        try:
            suggestions.append(RedlineSuggestion(
                id=f"citation-{document_id}-{index}",
                type=SuggestionType.LEGAL,
                severity=severity,
                original_text=original_text,
                suggested_text=suggested_text,
                explanation=_citation_explanation(finding),
                start_pos=finding.get("startPos", 0),
                end_pos=finding.get("endPos", 0),
                paragraph_id=finding.get("paragraphId", ""),
                confidence=0.9 if is_complete else 0.7,
            ))
        except ValidationError as e:
            logger.warning(f"Skipping citation finding #{index}: {e.error_count()} invalid field(s)")

    logger.info(f"Converted {len(suggestions)} citations to suggestions")
    return suggestions


# =============================================================================
# DOCUMENTS
# =============================================================================


def create_redline_document(
    original_content: str,
    suggestions: Iterable[RedlineSuggestion] = (),
    file_name: str = "Untitled Document",
    file_type: str = "text/plain",
    document_id: Optional[str] = None,
) -> RedlineDocument:
    """Build a review document whose current content starts at the baseline."""
    document = RedlineDocument(
        id=document_id or f"redline-{uuid.uuid4().hex[:8]}",
        original_content=original_content,
        current_content=original_content,
        suggestions=list(suggestions),
        metadata=RedlineMetadata(file_name=file_name, file_type=file_type),
    )
    return document.with_recomputed_metadata(touch=True)
