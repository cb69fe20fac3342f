"""
Phase-aware Logging for the Redline Reconciliation Engine
=========================================================

Colored, phase-tagged log lines for the document pipeline: anchoring at
extraction, correction batches, and auto-saves. Each phase is wrapped in a
context manager that reports how long it took.
IMPORTANT: No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from colorama import Fore, Style, init

# Initialize colorama for Windows
init(autoreset=True)


class Phase:
    """Pipeline phases of one redline document"""
    ANCHORING = "ANCHORING"
    RECONCILIATION = "RECONCILIATION"
    PERSISTENCE = "PERSISTENCE"


PHASE_COLORS = {
    Phase.ANCHORING: Fore.CYAN,
    Phase.RECONCILIATION: Fore.YELLOW,
    Phase.PERSISTENCE: Fore.GREEN,
}

# Text-based icons (no emojis for Windows)
PHASE_ICONS = {
    Phase.ANCHORING: "[ANC]",
    Phase.RECONCILIATION: "[REC]",
    Phase.PERSISTENCE: "[SAV]",
}


class TimingTracker:
    """Wall-clock timing of nested phases"""

    def __init__(self):
        self._start_times: Dict[str, float] = {}
        self.elapsed: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.perf_counter()

    def end(self, key: str) -> float:
        """Stop the timer for key; 0.0 if it was never started"""
        started = self._start_times.pop(key, None)
        if started is None:
            return 0.0
        self.elapsed[key] = time.perf_counter() - started
        return self.elapsed[key]


class PhaseLogger:
    """
    Document-scoped logger with phase headers and timing

    Usage:
        phase_logger = PhaseLogger("doc-42", verbose=True)

        with phase_logger.phase(Phase.RECONCILIATION, sub_label="12 corrections"):
            phase_logger.log_batch_summary({"applied": 10, "validation_mismatch": 2})
    """

    def __init__(
        self,
        document_id: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.document_id = document_id
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._phase_stack: List[str] = []

    @property
    def current_phase(self) -> Optional[str]:
        return self._phase_stack[-1] if self._phase_stack else None

    @contextmanager
    def phase(self, phase_name: str, sub_label: Optional[str] = None):
        """
        Wrap one pipeline phase; the footer is logged even if the body raises

        Example:
            with phase_logger.phase(Phase.ANCHORING, sub_label="contract.docx"):
                anchor_text(raw_text)
        """
        self._phase_stack.append(phase_name)
        timing_key = f"{phase_name}#{len(self._phase_stack)}"
        self.timing_tracker.start(timing_key)

        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        timestamp = datetime.now().strftime("%H:%M:%S")
        sub_str = f" - {sub_label}" if sub_label else ""
        self.logger.info(
            f"{color}{icon} {phase_name} [{self.document_id}]{sub_str} [{timestamp}]{Style.RESET_ALL}"
        )
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(timing_key)
            self.logger.info(
                f"{color}{icon} {phase_name} done in {elapsed:.3f}s{Style.RESET_ALL}"
            )
            self._phase_stack.pop()

    def info(self, message: str):
        """Log info message tagged with the current phase"""
        phase_name = self.current_phase
        if phase_name:
            icon = PHASE_ICONS.get(phase_name, "[???]")
            self.logger.info(f"{PHASE_COLORS.get(phase_name, Fore.WHITE)}{icon}{Style.RESET_ALL} {message}")
        else:
            self.logger.info(message)

    def debug(self, message: str):
        """Log debug message (only if verbose)"""
        if self.verbose:
            self.logger.debug(f"{Fore.WHITE}{Style.DIM}{message}{Style.RESET_ALL}")

    def warning(self, message: str):
        self.logger.warning(f"{Fore.YELLOW}[WARN] {message}{Style.RESET_ALL}")

    def error(self, message: str):
        self.logger.error(f"{Fore.RED}{Style.BRIGHT}[ERROR] {message}{Style.RESET_ALL}")

    def log_batch_summary(self, counts: Mapping[str, int]):
        """Log per-status counts of a correction batch"""
        applied = counts.get("applied", 0)
        failed = sum(v for k, v in counts.items() if k != "applied")
        color = Fore.GREEN if failed == 0 else Fore.YELLOW
        self.logger.info(
            f"{color}[+] applied={applied} [-] failed={failed}{Style.RESET_ALL}"
        )
        if self.verbose:
            for status, count in counts.items():
                if count:
                    self.logger.info(f"  {status}: {count}")

    def log_content_preview(self, label: str, content: str, max_chars: int = 300):
        """Log the head of a text (only if verbose)"""
        if not self.verbose:
            return
        preview = content[:max_chars]
        if len(content) > max_chars:
            preview += f"\n... ({len(content) - max_chars} more characters)"
        self.logger.info(f"{Fore.CYAN}[{label}]{Style.RESET_ALL}\n{preview}")
