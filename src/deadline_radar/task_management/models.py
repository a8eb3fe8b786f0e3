"""Data models for deadline detection and task management."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    """Task status enumeration."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Task urgency band, derived from time left until the deadline."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    OVERDUE = "overdue"


class PatternKind(str, Enum):
    """Kinds of deadline phrase templates."""

    TRIGGER_DATE = "trigger_date"
    TIME_DATE = "time_date"


@dataclass(frozen=True)
class TextFragment:
    """An atomic piece of page text, such as a single DOM text node."""

    text: str
    source_ref: str | None = None


@dataclass(frozen=True)
class TextChunk:
    """A bounded run of page text handed to the pattern matcher."""

    text: str
    source_ref: str | None = None


@dataclass(frozen=True)
class RawMatch:
    """A single deadline phrase hit inside a chunk."""

    full_match: str
    date_text: str
    context: str
    chunk: TextChunk
    template: str
    time_text: str | None = None


@dataclass(frozen=True)
class NormalizedDate:
    """An absolute deadline resolved from a date phrase."""

    timestamp: datetime
    had_explicit_year: bool
    had_explicit_time: bool


@dataclass(frozen=True)
class PageMetadata:
    """Where a batch of text came from."""

    url: str | None = None
    title: str | None = None


@dataclass
class Task:
    """Represents a deadline task."""

    id: str
    title: str
    description: str
    deadline: datetime
    priority: TaskPriority
    status: TaskStatus
    context: str
    detected_at: datetime
    created_at: datetime
    updated_at: datetime
    source: str
    tags: list[str] = field(default_factory=list)
    source_url: str | None = None
    source_ref: str | None = None
    page_title: str | None = None
    completed_at: datetime | None = None


@dataclass
class ReconciliationResult:
    """Outcome of merging one candidate task into the store."""

    inserted: bool
    task: Task
    duplicate_of: Task | None = None


@dataclass
class DetectionResult:
    """Result of one detection scan."""

    scan_id: int
    tasks: list[Task] = field(default_factory=list)
    inserted: list[Task] = field(default_factory=list)
    duplicates: list[Task] = field(default_factory=list)
    processing_time: float = 0.0
    superseded: bool = False
    error: str | None = None


@dataclass
class AlertSweepResult:
    """Result of one alert sweep over the store."""

    digest_count: int = 0
    last_call_count: int = 0
    notifications_sent: int = 0
    errors: list[str] = field(default_factory=list)
