"""
Configuration for the Redline Reconciliation Engine
===================================================

Central configuration for anchoring, locating, review and persistence.
Values come from defaults overridden by environment variables (a `.env`
file is loaded first). Invalid overrides are reported on stderr and the
default is kept.
"""

import os
import sys
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class RedlineSettings(BaseModel):
    """Tunables for the anchoring, locating and review pipeline."""

    min_paragraph_length: int = Field(
        default=10,
        ge=0,
        description="Paragraphs shorter than this (after trimming) receive no anchor",
    )
    partial_match_window: int = Field(
        default=50,
        ge=0,
        description="Characters inspected on each side of a word hit in partial matching",
    )
    min_partial_word_length: int = Field(
        default=3,
        ge=1,
        description="Minimum word length used by partial word matching",
    )
    autosave_debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Quiet period before a mutated document is persisted",
    )
    storage_path: str = Field(
        default="data/redlines",
        description="Directory used by the JSON file persistence backend",
    )
    default_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence assigned to suggestions that carry none",
    )


def _report_invalid(name: str, raw: str, error: Exception) -> None:
    print(
        f"[config] Ignoring invalid value for {name}={raw!r}: {error}",
        file=sys.stderr,
    )


def _env_override(name: str, cast: Callable[[str], Any]) -> Optional[Any]:
    """Read and cast an environment override, or None when absent/invalid."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw.strip())
    except (TypeError, ValueError) as e:
        _report_invalid(name, raw, e)
        return None


class Config:
    """Process-wide configuration object."""

    LOG_LEVEL: str = "INFO"

    def __init__(self):
        self.REDLINE = RedlineSettings()
        self.load_from_environment()

    def load_from_environment(self):
        """Load overrides from environment variables."""
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", self.LOG_LEVEL).upper()

        overrides = {
            "min_paragraph_length": _env_override("REDLINE_MIN_PARAGRAPH_LENGTH", int),
            "partial_match_window": _env_override("REDLINE_PARTIAL_MATCH_WINDOW", int),
            "min_partial_word_length": _env_override("REDLINE_MIN_PARTIAL_WORD_LENGTH", int),
            "autosave_debounce_seconds": _env_override(
                "REDLINE_AUTOSAVE_DEBOUNCE_SECONDS", float
            ),
            "storage_path": _env_override("REDLINE_STORAGE_PATH", str),
            "default_confidence": _env_override("REDLINE_DEFAULT_CONFIDENCE", float),
        }

        settings = self.REDLINE.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            candidate = {**settings, key: value}
            try:
                RedlineSettings(**candidate)
            except ValueError as e:
                _report_invalid(key, str(value), e)
                continue
            settings = candidate

        self.REDLINE = RedlineSettings(**settings)


# Global configuration instance
config = Config()
