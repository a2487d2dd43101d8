"""Core data structures for the Palimpsest translator."""

from __future__ import annotations

import math
import pathlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .errors import ErrorRecord


Span = Tuple[int, int]


class SessionState(Enum):
    """Lifecycle of a translation session."""

    IDLE = "idle"
    PREPARING = "preparing"
    READY = "ready"
    TRANSLATING = "translating"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class LanguagePairStatus(Enum):
    """Answer of a language-pair availability check."""

    UNKNOWN = "unknown"
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Paragraph:
    """A paragraph-like element found in a markup document.

    ``span`` is a half-open character range over the decoded document text and
    covers the element including its open and close tags.
    """

    span: Span
    text: str
    size: int = 1


@dataclass(frozen=True)
class TextUnit:
    """Represents a single text element queued for translation."""

    index: int
    source_text: str
    source_file: Optional[pathlib.Path] = None
    span: Optional[Span] = None
    batch_size: int = 1

    @property
    def is_metadata(self) -> bool:
        return self.source_file is None


@dataclass(frozen=True)
class DocumentPlan:
    """A content document and the number of units its extraction produced."""

    path: pathlib.Path
    unit_count: int


@dataclass(frozen=True)
class ProgressStats:
    """Completed/total counters with a running mean of per-unit duration."""

    total: int = 0
    completed: int = 0
    running_average_seconds: float = 0.0

    def record(self, duration: float) -> "ProgressStats":
        """Return the stats after one more unit took ``duration`` seconds."""

        average = (
            self.running_average_seconds * self.completed + duration
        ) / (self.completed + 1)
        return replace(
            self,
            completed=self.completed + 1,
            running_average_seconds=average,
        )

    @property
    def remaining(self) -> int:
        return max(self.total - self.completed, 0)

    @property
    def seconds_left(self) -> float:
        return self.remaining * max(self.running_average_seconds, 0.0)

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    def eta(self) -> Optional[str]:
        return format_eta(self.seconds_left)


def format_eta(seconds_left: float) -> Optional[str]:
    """Format a remaining duration as ``"2m 10s"`` or ``"12s"``.

    Returns ``None`` when the value is not finite or not positive.
    """

    if not math.isfinite(seconds_left) or seconds_left <= 0:
        return None
    whole = int(seconds_left)
    minutes, seconds = divmod(whole, 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of a session for observers."""

    state: SessionState
    progress: ProgressStats
    current_source: Optional[str] = None
    latest_result: Optional[str] = None
    error: Optional[str] = None
    output_path: Optional[pathlib.Path] = None
    notes: Tuple[ErrorRecord, ...] = field(default_factory=tuple)
