"""Deadline phrase templates and the matcher that applies them to chunks."""

import re
from dataclasses import dataclass

from ..logging_utils import get_logger
from .models import PatternKind, RawMatch, TextChunk

logger = get_logger(__name__)

MONTH_NAMES = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
ORDINAL = r"(?:st|nd|rd|th)?"

# Alternation order matters: longer forms first so "Oct 15, 2025" is not cut
# short to "Oct 15".
DATE_EXPRESSION = (
    rf"{MONTH_NAMES}\.?\s+\d{{1,2}}{ORDINAL}(?:,?\s+\d{{4}})?"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}/\d{1,2}(?:/\d{2,4})?"
    rf"|\d{{1,2}}{ORDINAL}\s+(?:of\s+)?{MONTH_NAMES}(?:,?\s+\d{{4}})?"
    r"|tomorrow|next\s+week|next\s+month|end\s+of\s+(?:the\s+)?(?:week|month)"
)

CLOCK_TIME = r"\d{1,2}:\d{2}(?:\s*(?:am|pm)\b)?|\d{1,2}\s*(?:am|pm)\b"

DEADLINE_TRIGGERS = (
    r"deadline|due(?:\s+date)?|submit(?:\s+by)?|expires?(?:\s+on)?|until|before|by"
)
TASK_NOUNS = (
    r"assignment|homework|project|essay|paper|report|submission|task"
    r"|quiz|exam|test|presentation|lab"
)
NOUN_DUE_TRIGGERS = r"is\s+due|due|deadline|submit|on"

_ORDINAL_SUFFIX_RE = re.compile(r"(\d+)(?:st|nd|rd|th)\b", re.IGNORECASE)


@dataclass(frozen=True)
class PatternTemplate:
    """
    One deadline phrase template.

    ``date_group`` and ``time_group`` name the regex groups holding the
    date and (optional) time substrings.
    """

    name: str
    kind: PatternKind
    regex: re.Pattern[str]
    date_group: str = "date"
    time_group: str = "time"


def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


DEADLINE_TEMPLATES: tuple[PatternTemplate, ...] = (
    PatternTemplate(
        name="trigger",
        kind=PatternKind.TRIGGER_DATE,
        regex=_compile(
            rf"\b(?:{DEADLINE_TRIGGERS})\s*:?\s*(?P<date>{DATE_EXPRESSION})\b"
            rf"(?:\s+at\s+(?P<time>{CLOCK_TIME}))?"
        ),
    ),
    PatternTemplate(
        name="task_noun",
        kind=PatternKind.TRIGGER_DATE,
        regex=_compile(
            rf"\b(?:{TASK_NOUNS})\s+(?:{NOUN_DUE_TRIGGERS})\s*:?\s*"
            rf"(?P<date>{DATE_EXPRESSION})\b"
            rf"(?:\s+at\s+(?P<time>{CLOCK_TIME}))?"
        ),
    ),
    PatternTemplate(
        name="time_on_date",
        kind=PatternKind.TIME_DATE,
        regex=_compile(
            rf"\b(?:by|before|until)\s+(?P<time>\d{{1,2}}:\d{{2}}(?:\s*(?:am|pm)\b)?)"
            rf"\s+on\s+(?P<date>{DATE_EXPRESSION})\b"
        ),
    ),
)


def strip_ordinals(text: str) -> str:
    """Remove ordinal suffixes: "October 1st" becomes "October 1"."""
    return _ORDINAL_SUFFIX_RE.sub(r"\1", text)


class DeadlineMatcher:
    """Applies the ordered deadline templates to text chunks."""

    def __init__(
        self, templates: tuple[PatternTemplate, ...] = DEADLINE_TEMPLATES
    ) -> None:
        """
        Initialize the matcher.

        Args:
            templates: Templates to apply, in precedence order
        """
        self.templates = templates

    def match(self, chunk: TextChunk) -> list[RawMatch]:
        """
        Find every deadline phrase in a chunk.

        All templates run against the whole chunk; overlapping hits from
        different templates are all returned.

        Args:
            chunk: Chunk to scan

        Returns:
            Matches in template order, then position order
        """
        matches = []
        for template in self.templates:
            for hit in template.regex.finditer(chunk.text):
                date_text = hit.group(template.date_group)
                if not date_text:
                    continue

                time_text = hit.groupdict().get(template.time_group)
                raw = RawMatch(
                    full_match=hit.group(0).strip(),
                    date_text=strip_ordinals(date_text.strip()),
                    time_text=time_text.strip() if time_text else None,
                    context=chunk.text,
                    chunk=chunk,
                    template=template.name,
                )
                logger.trace(  # type: ignore[attr-defined]
                    f"Template '{template.name}' matched '{raw.full_match}'"
                )
                matches.append(raw)

        return matches
