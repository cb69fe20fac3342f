"""
Tests for logging_utils.py - Phase-aware colored logging.
"""

import pytest
from unittest.mock import Mock

from logging_utils import PHASE_ICONS, Phase, PhaseLogger, TimingTracker
from redline import anchor_text


def logged(mock_logger, method="info"):
    return " ".join(str(call) for call in getattr(mock_logger, method).call_args_list)


class TestTimingTracker:
    """Tests for TimingTracker."""

    def test_start_end(self):
        tracker = TimingTracker()
        tracker.start("a")
        elapsed = tracker.end("a")
        assert elapsed >= 0
        assert tracker.elapsed == {"a": elapsed}

    def test_end_without_start(self):
        assert TimingTracker().end("missing") == 0.0


class TestPhaseLogger:
    """Tests for PhaseLogger."""

    def test_phase_context_logs_enter_and_exit(self):
        mock_logger = Mock()
        phase_logger = PhaseLogger("doc-1", logger=mock_logger)

        with phase_logger.phase(Phase.ANCHORING, sub_label="brief.txt"):
            assert phase_logger.current_phase == Phase.ANCHORING
            phase_logger.info("anchoring 3 paragraphs")

        messages = logged(mock_logger)
        assert PHASE_ICONS[Phase.ANCHORING] in messages
        assert "[doc-1]" in messages
        assert "brief.txt" in messages
        assert "done in" in messages
        assert "anchoring 3 paragraphs" in messages
        assert phase_logger.current_phase is None

    def test_nested_phases_restore_outer(self):
        phase_logger = PhaseLogger("doc-1", logger=Mock())
        with phase_logger.phase(Phase.RECONCILIATION):
            with phase_logger.phase(Phase.PERSISTENCE):
                assert phase_logger.current_phase == Phase.PERSISTENCE
            assert phase_logger.current_phase == Phase.RECONCILIATION

    def test_phase_exits_on_exception(self):
        mock_logger = Mock()
        phase_logger = PhaseLogger("doc-1", logger=mock_logger)
        with pytest.raises(RuntimeError):
            with phase_logger.phase(Phase.PERSISTENCE):
                raise RuntimeError("boom")
        assert phase_logger.current_phase is None
        assert "done in" in logged(mock_logger)

    def test_debug_only_when_verbose(self):
        quiet_logger, loud_logger = Mock(), Mock()
        PhaseLogger("q", logger=quiet_logger).debug("hidden")
        PhaseLogger("l", verbose=True, logger=loud_logger).debug("shown")
        quiet_logger.debug.assert_not_called()
        loud_logger.debug.assert_called_once()

    def test_warning_and_error_prefixes(self):
        mock_logger = Mock()
        phase_logger = PhaseLogger("doc-1", logger=mock_logger)
        phase_logger.warning("slow disk")
        phase_logger.error("save failed")
        assert "[WARN] slow disk" in logged(mock_logger, "warning")
        assert "[ERROR] save failed" in logged(mock_logger, "error")

    def test_batch_summary_lists_statuses_when_verbose(self):
        mock_logger = Mock()
        phase_logger = PhaseLogger("doc-1", verbose=True, logger=mock_logger)
        phase_logger.log_batch_summary({"applied": 2, "anchor_not_found": 1, "malformed": 0})

        messages = logged(mock_logger)
        assert "applied=2" in messages
        assert "failed=1" in messages
        assert "anchor_not_found: 1" in messages
        assert "malformed" not in messages

    def test_preview_only_when_verbose(self):
        quiet_logger = Mock()
        PhaseLogger("q", logger=quiet_logger).log_content_preview("TEXT", "x" * 10)
        quiet_logger.info.assert_not_called()

        loud_logger = Mock()
        PhaseLogger("l", verbose=True, logger=loud_logger).log_content_preview(
            "TEXT", "y" * 20, max_chars=5
        )
        assert "15 more characters" in logged(loud_logger)


# ============================================================================
# Phases emitted by the pipeline
# ============================================================================

class TestPipelinePhases:
    """The anchoring step reports itself under the ANCHORING phase."""

    def test_anchor_text_logs_anchoring_phase(self):
        mock_logger = Mock()
        phase_logger = PhaseLogger("doc-7", verbose=True, logger=mock_logger)

        result = anchor_text(
            "Plaintiff alleges fraud.\n\nDefendant denies all claims.",
            phase_logger=phase_logger,
        )

        messages = logged(mock_logger)
        assert result.anchor_count == 2
        assert f"{PHASE_ICONS[Phase.ANCHORING]} ANCHORING [doc-7]" in messages
        assert "2 anchors" in messages
        assert "[ANCHORED]" in messages
        assert phase_logger.current_phase is None
