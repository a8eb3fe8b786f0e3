"""Task synthesis: deadline matches to candidate task records."""

import logging
import re
import time
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from .config import DEFAULT_TASK_TITLE, TASK_ID_PREFIX, TASK_KEYWORDS, TITLE_WORD_LIMIT
from .dates import normalize_date
from .models import NormalizedDate, PageMetadata, RawMatch, Task, TaskStatus
from .priority import classify_priority

logger = logging.getLogger(__name__)

_SENTENCE_END_RE = re.compile(r"[.!?]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def generate_task_id() -> str:
    """Create a task ID from a millisecond timestamp and a random suffix."""
    return f"{TASK_ID_PREFIX}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # Prefix match so plurals count ("exams", "reports")
    return re.compile(rf"\b{re.escape(keyword)}", re.IGNORECASE)


def sentence_around(full_match: str, context: str) -> str | None:
    """
    Find the sentence-like segment of the context holding the match.

    Segments are delimited by ``.``, ``!`` and ``?``. Punctuation inside
    the match itself ("Oct. 15") does not split it.

    Returns:
        The segment, or None if the match does not occur in the context
    """
    index = context.find(full_match)
    if index < 0:
        return None

    end_of_match = index + len(full_match)
    start = 0
    for boundary in _SENTENCE_END_RE.finditer(context, 0, index):
        start = boundary.end()

    following = _SENTENCE_END_RE.search(context, end_of_match)
    end = following.start() if following else len(context)
    return context[start:end]


class TaskSynthesizer:
    """Builds candidate tasks from matches and their resolved deadlines."""

    def __init__(
        self,
        keywords: Iterable[str] = TASK_KEYWORDS,
        title_word_limit: int = TITLE_WORD_LIMIT,
        id_factory: Callable[[], str] = generate_task_id,
    ) -> None:
        """
        Initialize the synthesizer.

        Args:
            keywords: Task nouns used for titles and tags
            title_word_limit: Maximum words in an extracted title
            id_factory: Callable producing fresh task IDs
        """
        self.keywords = tuple(keywords)
        self.title_word_limit = title_word_limit
        self._id_factory = id_factory
        self._keyword_patterns = [
            (keyword, _keyword_pattern(keyword)) for keyword in self.keywords
        ]

    def extract_title(self, full_match: str, context: str) -> str:
        """
        Derive a title from the sentence containing the match.

        Only sentences mentioning a task keyword produce a title; anything
        else gets the generic placeholder.
        """
        sentence = sentence_around(full_match, context)
        if sentence is None or not self._has_keyword(sentence):
            return DEFAULT_TASK_TITLE

        words = sentence.split()[: self.title_word_limit]
        title = _PUNCTUATION_RE.sub("", " ".join(words))
        title = " ".join(title.split())
        return title or DEFAULT_TASK_TITLE

    def extract_tags(self, context: str) -> list[str]:
        """Return the task keywords found in the context, in keyword order."""
        return [keyword for keyword, pattern in self._keyword_patterns if pattern.search(context)]

    def synthesize(
        self,
        match: RawMatch,
        normalized: NormalizedDate,
        page: PageMetadata,
        now: datetime,
    ) -> Task | None:
        """
        Build a candidate task.

        Args:
            match: Matcher output
            normalized: Resolved deadline for the match
            page: Page the text came from
            now: Reference instant for priority and the past-deadline check

        Returns:
            Pending candidate task, or None if the deadline has passed
        """
        deadline = normalized.timestamp
        if deadline < now:
            logger.debug(f"Skipping past deadline {deadline.isoformat()} for '{match.full_match}'")
            return None

        return Task(
            id=self._id_factory(),
            title=self.extract_title(match.full_match, match.context),
            description=match.full_match,
            deadline=deadline,
            priority=classify_priority(deadline, now, TaskStatus.PENDING),
            status=TaskStatus.PENDING,
            context=match.context.strip(),
            detected_at=now,
            created_at=now,
            updated_at=now,
            source="detection",
            tags=self.extract_tags(match.context),
            source_url=page.url,
            source_ref=match.chunk.source_ref,
            page_title=page.title,
        )

    def synthesize_batch(
        self, matches: Iterable[RawMatch], page: PageMetadata, now: datetime
    ) -> list[Task]:
        """
        Normalize and synthesize a batch of matches.

        Matches that resolve to the same title and deadline (overlapping
        template hits) collapse into one candidate.
        """
        candidates: list[Task] = []
        seen: set[tuple[str, datetime]] = set()

        for match in matches:
            normalized = normalize_date(match.date_text, match.context, now, match.time_text)
            if normalized is None:
                continue

            task = self.synthesize(match, normalized, page, now)
            if task is None:
                continue

            key = (task.title, task.deadline)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(task)

        return candidates

    def _has_keyword(self, text: str) -> bool:
        return any(pattern.search(text) for _, pattern in self._keyword_patterns)
