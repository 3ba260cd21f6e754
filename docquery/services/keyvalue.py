# =============================================================================
# KeyValue Extractor — Fields, Sections, Lists, Dates and Amounts from Prose
# =============================================================================
#
# Policy schedules, statements and letters carry most of their facts as
# labelled lines ("Policy No: AB12345", "Premium  ₹12,500"). This module
# recovers those labels so a question like "what is the policy number" can be
# answered with the exact value instead of a ranked passage.
#
# Extraction passes over the text:
# 1. Generic `Key: Value` lines
# 2. A curated list of known labels anchored at the start of a line
#    (longest label first, at most one per line)
# 3. Inline patterns over the whole text (policy number, premium, status);
#    these never override a value found on a labelled line
# 4. Sections (lone capitalised lines, `=== h ===`, `--- h ---`), lists,
#    dates and currency amounts
#
# DESIGN DECISION: Field names are normalised once at extraction.
# "Policy No", "Policy No." and "Policy#" all become "Policy Number", so
# lookups only deal with one spelling.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from docquery.models.results import FieldMatch

logger = logging.getLogger(__name__)

MAX_VALUE_CHARS = 500
MAX_SECTION_CHARS = 500
DEFAULT_SECTION = "General"

KNOWN_FIELDS: tuple[str, ...] = (
    "Policy No", "Policy Number", "Policy No.", "Policy#",
    "Name", "Policyholder", "Policy Holder", "Insured Name",
    "Address", "Residential Address", "Communication Address",
    "Premium", "Premium Amount", "Annual Premium", "Total Premium",
    "Sum Assured", "Sum Insured", "Coverage Amount",
    "Policy Term", "Term", "Period", "Policy Period",
    "Start Date", "Commencement Date", "Issue Date",
    "Maturity Date", "End Date", "Expiry Date",
    "Status", "Policy Status", "Coverage Status",
    "Plan", "Plan Name", "Product Name",
    "Nominee", "Beneficiary",
    "Date of Birth", "DOB", "Age",
    "Mobile", "Phone", "Contact", "Email",
    "PAN", "Aadhaar", "Aadhar",
)

# Longest label first so "Policy Number" wins over "Policy No" and "Plan Name"
# over "Plan".
_KNOWN_FIELD_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (label, re.compile(rf"^{re.escape(label)}(?:\s*[:#-]\s*|\s+)(.+)$", re.IGNORECASE))
    for label in sorted(KNOWN_FIELDS, key=len, reverse=True)
)

_COLON_LINE = re.compile(r"^([A-Za-z][A-Za-z\s/#.]*?)\s*:\s*(.+)$")

_SECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^([A-Z][A-Za-z\s]+):?\s*$"),
    re.compile(r"^=+\s*([A-Za-z][A-Za-z\s]*?)\s*=+$"),
    re.compile(r"^-+\s*([A-Za-z][A-Za-z\s]*?)\s*-+$"),
)
_MAX_SECTION_TITLE_WORDS = 6

_LIST_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[-•*]\s+(.+)$"),
    re.compile(r"^\d+\.\s+(.+)$"),
    re.compile(r"^[a-z]\)\s+(.+)$", re.IGNORECASE),
)

DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),
    re.compile(r"\b\d{4}[/-]\d{1,2}[/-]\d{1,2}\b"),
    re.compile(
        r"\b\d{1,2}(?:st|nd|rd|th)?\s+"
        r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?,?\s+\d{4}\b",
        re.IGNORECASE,
    ),
)

_AMOUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"₹\s*([\d,]+(?:\.\d{1,2})?)"),
    re.compile(r"\bRs\.?\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE),
    re.compile(r"\bINR\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE),
    re.compile(r"[$€£]\s*([\d,]+(?:\.\d{1,2})?)"),
)

_INLINE_POLICY = re.compile(r"(?i:\bpolicy\s*(?:no\.?|number|#))[:\s]*([A-Z0-9][A-Z0-9/-]{3,})")
_INLINE_PREMIUM = re.compile(
    r"(?i:\bpremium(?:\s+amount)?)[:\s]*(?:₹|(?i:rs\.?)|INR|\$)?\s*(\d[\d,]*(?:\.\d{1,2})?)"
)
_INLINE_STATUS = re.compile(r"(?i:\bstatus)\s*[:-]\s*([A-Za-z][\w ]*?)\s*(?:\n|\.|$)")

_NUMBER_ABBREVIATION = re.compile(r"\bNo\.?(?=\s|$)|\s*#$", re.IGNORECASE)
_LEADING_THE = re.compile(r"^The\s+", re.IGNORECASE)

_QUESTION_STOP_WORDS: frozenset[str] = frozenset({
    "what", "whats", "is", "are", "was", "were", "the", "a", "an", "of", "for",
    "my", "me", "tell", "show", "give", "please", "which", "who", "whose",
    "in", "on", "this", "that", "document", "find", "get", "value",
})
_QUESTION_TOKEN = re.compile(r"[a-z0-9#]+")
_POSSESSIVE = re.compile(r"['’]s\b")
_MIN_MATCH_TOKEN_CHARS = 3


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldValue:
    value: str
    section: str | None = None


@dataclass
class DocumentFields:
    """Everything the extractor recovered from one document."""

    source: str
    fields: dict[str, FieldValue] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)
    lists: list[list[str]] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    amounts: list[float] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields and not self.sections


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_field_name(name: str) -> str:
    """
    Canonical spelling of a field label.

    Trailing colons and whitespace are dropped, inner whitespace collapsed,
    "No"/"No."/"#" become "Number" and a leading "The" is removed.
    """
    name = name.strip().rstrip(":").strip()
    name = re.sub(r"\s+", " ", name)
    name = _NUMBER_ABBREVIATION.sub(lambda m: " Number" if "#" in m.group(0) else "Number", name)
    name = _LEADING_THE.sub("", name)
    return re.sub(r"\s+", " ", name).strip()


def extract_document_fields(text: str, source: str) -> DocumentFields:
    """
    Extract fields, sections, lists, dates and amounts from a document.

    Args:
        text: Document text (original, or reassembled from chunks).
        source: Label reported with every match, usually the filename.

    Returns:
        A DocumentFields; empty collections when nothing was found.
    """
    result = DocumentFields(source=source)
    section = DEFAULT_SECTION
    section_lines: dict[str, list[str]] = {}

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        heading = _section_heading(line)
        if heading is not None:
            section = heading
        else:
            section_lines.setdefault(section, []).append(line)

        # A lone "Status Active" line is both a heading and a field.
        pair = _labelled_pair(line)
        if pair is not None:
            name, value = pair
            result.fields[name] = FieldValue(value, section)

    for name, value in _inline_fields(text).items():
        result.fields.setdefault(name, FieldValue(value, None))

    result.sections = {
        name: "\n".join(lines) for name, lines in section_lines.items()
    }
    result.lists = extract_lists(text)
    result.dates = extract_dates(text)
    result.amounts = extract_amounts(text)

    logger.debug(
        "Extracted %d fields and %d sections from %s",
        len(result.fields), len(result.sections), source,
    )
    return result


def extract_lists(text: str) -> list[list[str]]:
    """Runs of consecutive bulleted, numbered or lettered lines."""
    lists: list[list[str]] = []
    current: list[str] = []
    for raw_line in text.split("\n"):
        item = _list_item(raw_line.strip())
        if item is not None:
            current.append(item)
        elif current:
            lists.append(current)
            current = []
    if current:
        lists.append(current)
    return lists


def extract_dates(text: str) -> list[str]:
    dates: list[str] = []
    for pattern in DATE_PATTERNS:
        dates.extend(m.group(0) for m in pattern.finditer(text))
    return list(dict.fromkeys(dates))


def extract_amounts(text: str) -> list[float]:
    amounts: list[float] = []
    for pattern in _AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            digits = match.group(1).replace(",", "")
            if digits.strip("."):
                amounts.append(float(digits))
    return amounts


def lookup_fields(question: str, documents: list[DocumentFields]) -> list[FieldMatch]:
    """
    Match a question against extracted fields and sections.

    A field matches when its name appears in the question as whole words, or
    when any content word of the question (three letters or more) appears
    inside the field name. Possessive `'s` is dropped first.
    A section matches when its heading appears in the question; the first
    500 characters of its body are returned. More specific (longer) field
    names come first; an empty list means nothing matched.
    """
    lowered = question.lower()
    tokens = {
        t for t in _QUESTION_TOKEN.findall(_POSSESSIVE.sub("", lowered))
        if t not in _QUESTION_STOP_WORDS and len(t) >= _MIN_MATCH_TOKEN_CHARS
    }

    field_matches: list[FieldMatch] = []
    section_matches: list[FieldMatch] = []
    seen: set[tuple[str, str, str]] = set()

    for doc in documents:
        for name, found in doc.fields.items():
            key = name.lower()
            forward = re.search(rf"(?<!\w){re.escape(key)}(?!\w)", lowered)
            backward = any(token in key for token in tokens)
            if not (forward or backward):
                continue
            marker = (name, found.value, doc.source)
            if marker in seen:
                continue
            seen.add(marker)
            field_matches.append(FieldMatch(
                field=name, value=found.value, source=doc.source,
                section=found.section, match_type="field",
            ))

        for heading, body in doc.sections.items():
            if heading == DEFAULT_SECTION:
                continue
            if re.search(rf"(?<!\w){re.escape(heading.lower())}(?!\w)", lowered):
                section_matches.append(FieldMatch(
                    field=heading, value=body[:MAX_SECTION_CHARS], source=doc.source,
                    section=heading, match_type="section",
                ))

    field_matches.sort(key=lambda m: len(m.field), reverse=True)
    return field_matches + section_matches


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _section_heading(line: str) -> str | None:
    for pattern in _SECTION_PATTERNS:
        match = pattern.match(line)
        if match:
            title = match.group(1).strip()
            if title and len(title.split()) <= _MAX_SECTION_TITLE_WORDS:
                return title
    return None


def _labelled_pair(line: str) -> tuple[str, str] | None:
    """A (normalised name, value) pair from one line, if it is labelled."""
    colon = _COLON_LINE.match(line)
    if colon:
        value = colon.group(2).strip()
        if value and len(value) < MAX_VALUE_CHARS:
            return normalize_field_name(colon.group(1)), value

    for label, pattern in _KNOWN_FIELD_PATTERNS:
        match = pattern.match(line)
        if match:
            value = match.group(1).strip()
            if value and len(value) < MAX_VALUE_CHARS:
                return normalize_field_name(label), value
            return None
    return None


def _inline_fields(text: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    policy = _INLINE_POLICY.search(text)
    if policy and any(ch.isdigit() for ch in policy.group(1)):
        fields["Policy Number"] = policy.group(1)
    premium = _INLINE_PREMIUM.search(text)
    if premium:
        fields["Premium Amount"] = premium.group(1).replace(",", "")
    status = _INLINE_STATUS.search(text)
    if status and status.group(1).strip():
        fields["Status"] = status.group(1).strip()
    return fields


def _list_item(line: str) -> str | None:
    for pattern in _LIST_PATTERNS:
        match = pattern.match(line)
        if match:
            return match.group(1).strip()
    return None
