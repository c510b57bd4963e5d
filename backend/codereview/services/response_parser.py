"""Turns free-text AI review output into structured feedback items."""

import logging
import re
from typing import List, Optional, Tuple

from codereview.models.analysis import Category, FeedbackItem, Severity

logger = logging.getLogger(__name__)

_FLAGS = re.ASCII | re.IGNORECASE

# List markers, tried in order; the first one found at least twice wins
MARKER_PATTERNS = [
    re.compile(r"^[ \t]*\d+[.)][ \t]+", re.MULTILINE),
    re.compile(r"^[ \t]*[-•][ \t]+", re.MULTILINE),
    re.compile(r"^[ \t]*\*(?!\*)[ \t]+", re.MULTILINE),
]

PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")

NO_ISSUES = re.compile(r"^[\W_]*no (?:issues|problems) found[\W_]*$", _FLAGS)

SEVERITY_LABEL = re.compile(
    r"^[ \t]*\**[ \t]*(critical|warning|suggestion|style|info)[ \t]*\**[ \t]*[:\-]",
    _FLAGS,
)

SEVERITY_KEYWORDS = [
    (Severity.CRITICAL, re.compile(r"\b(?:critical|error|must fix|security|vulnerabilit(?:y|ies)|injection)", _FLAGS)),
    (Severity.WARNING, re.compile(r"\b(?:warning|should|performance|potential)", _FLAGS)),
    (Severity.STYLE, re.compile(r"\b(?:style|formatting|naming|convention)", _FLAGS)),
]

# Anchored extraction used when the text has no list structure
ANCHOR_PATTERNS = [
    (Severity.CRITICAL, re.compile(r"\b(?:critical|error|must fix|security issue)[ \t]*:[ \t]*(.+)", _FLAGS)),
    (Severity.WARNING, re.compile(r"\b(?:warning|should|performance issue|potential problem)[ \t]*:[ \t]*(.+)", _FLAGS)),
    (Severity.SUGGESTION, re.compile(r"\b(?:suggestion|consider|recommend|improvement)[ \t]*:[ \t]*(.+)", _FLAGS)),
    (Severity.STYLE, re.compile(r"\b(?:style|formatting|naming|convention)[ \t]*:[ \t]*(.+)", _FLAGS)),
]

FOLLOW_UP_ANCHOR = re.compile(r"^[ \t]*(?:suggestion|consider)[ \t]*:[ \t]*(.+)$", _FLAGS)

CATEGORY_KEYWORDS = [
    (Category.SECURITY, re.compile(r"\b(?:security|vulnerabilit(?:y|ies)|injection|xss|csrf)", _FLAGS)),
    (Category.PERFORMANCE, re.compile(r"\b(?:performance|slow|optimi[sz]ation)", _FLAGS)),
    (Category.STYLE, re.compile(r"\b(?:naming|style|formatting|convention)", _FLAGS)),
    (Category.ERROR_HANDLING, re.compile(r"\b(?:error[ \t]*handling|exception|validation)", _FLAGS)),
    (Category.MAINTAINABILITY, re.compile(r"\b(?:maintainab|duplicat|coupling|complexity|refactor)", _FLAGS)),
    (Category.READABILITY, re.compile(r"\b(?:readab|unclear|confusing|comment)", _FLAGS)),
]

SUGGESTION_PATTERNS = [
    re.compile(r"\b(?:suggestion|consider|try|you could|it would be better)\b[ \t]*:?[ \t]*(.+)", _FLAGS | re.DOTALL),
    re.compile(r"\b(?:to fix this|to resolve this|solution)\b[ \t]*:?[ \t]*(.+)", _FLAGS | re.DOTALL),
]

_EXTENSIONS = r"(?:cs|py|js|jsx|ts|tsx|java|go|rb|php|cpp|c|h|html|css|json|xml|ya?ml|sql|config|md)"

FILE_PATTERNS = [
    re.compile(r"([A-Za-z]:\\[^:\s]+)", re.ASCII),
    re.compile(r"((?:[A-Za-z0-9_.\-]+[/\\])+[A-Za-z0-9_\-]+\." + _EXTENSIONS + r")\b", _FLAGS),
    re.compile(r"(\./[^:\s]+)", re.ASCII),
    re.compile(r"\b([A-Za-z0-9_\-]+\." + _EXTENSIONS + r")\b", _FLAGS),
]

LINE_PATTERNS = [
    re.compile(r"\bline[ \t]+(\d+)", _FLAGS),
    re.compile(r"\bline:[ \t]*(\d+)", _FLAGS),
    re.compile(r"\bL(\d+)\b", re.ASCII),
    re.compile(r":(\d+):", re.ASCII),
]

LEADING_LABEL = re.compile(
    r"^[ \t]*\**[ \t]*(?:critical|warning|suggestion|style|info)[ \t]*\**[ \t]*[:\-][ \t]*\**[ \t]*",
    _FLAGS,
)

CODE_FENCE = re.compile(r"```[A-Za-z0-9_+\-]*[ \t]*\n(.*?)```", re.DOTALL)


class ResponseParser:
    """Deterministic parser for AI review text. Never raises."""

    def parse(self, raw_response: Optional[str]) -> List[FeedbackItem]:
        if not raw_response or not raw_response.strip():
            return []
        if NO_ISSUES.match(raw_response.strip()):
            logger.debug("[Parser] Review reported no issues")
            return []
        try:
            items = self._parse(raw_response)
        except Exception:
            logger.exception("[Parser] Unexpected failure, returning raw text as one item")
            items = []
        if not items:
            items = [self._general_item(raw_response)]
        logger.debug(f"[Parser] Parsed {len(items)} feedback items")
        return items

    def _parse(self, text: str) -> List[FeedbackItem]:
        segments = self.split_into_issues(text)
        if segments:
            return [self.parse_segment(segment) for segment in segments]
        return self.extract_by_anchors(text)

    def split_into_issues(self, text: str) -> List[str]:
        """Return issue segments, or [] when the text has no list structure.

        With list markers, an item is the text after its marker up to the next
        marker or the first blank line outside a code fence. Text before the
        first marker and after the list is not an issue. Without markers the
        text is split into paragraphs.
        """
        for pattern in MARKER_PATTERNS:
            markers = list(pattern.finditer(text))
            if len(markers) < 2:
                continue
            segments = []
            for i, marker in enumerate(markers):
                end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
                segment = _end_at_blank_line(text[marker.end():end]).strip()
                if segment:
                    segments.append(segment)
            if len(segments) > 1:
                return segments

        paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(text)]
        paragraphs = [p for p in paragraphs if p]
        if len(paragraphs) > 1:
            return paragraphs
        return []

    def parse_segment(self, segment: str) -> FeedbackItem:
        snippet = self._code_snippet(segment)
        prose = CODE_FENCE.sub("", segment).strip() or segment
        message, suggestion = self._split_suggestion(prose)
        return FeedbackItem(
            severity=self._severity(segment),
            category=self._category(segment),
            message=message,
            file_path=self._file_path(segment),
            line_number=self._line_number(segment),
            suggestion=suggestion,
            code_snippet=snippet,
        )

    def extract_by_anchors(self, text: str) -> List[FeedbackItem]:
        items: List[FeedbackItem] = []
        previous_line_item = False
        for line in text.splitlines():
            if previous_line_item and items[-1].suggestion is None:
                follow_up = FOLLOW_UP_ANCHOR.match(line)
                if follow_up:
                    last = items[-1]
                    items[-1] = FeedbackItem(
                        severity=last.severity,
                        category=last.category,
                        message=last.message,
                        file_path=last.file_path,
                        line_number=last.line_number,
                        suggestion=follow_up.group(1).strip(),
                        code_snippet=last.code_snippet,
                    )
                    previous_line_item = False
                    continue

            previous_line_item = False
            for severity, pattern in ANCHOR_PATTERNS:
                match = pattern.search(line)
                if not match:
                    continue
                issue = match.group(1).strip()
                if not issue:
                    continue
                message, suggestion = self._split_suggestion(issue)
                items.append(FeedbackItem(
                    severity=severity,
                    category=self._category(line),
                    message=message,
                    file_path=self._file_path(issue),
                    line_number=self._line_number(issue),
                    suggestion=suggestion,
                ))
                previous_line_item = True
                break
        return items

    def _general_item(self, raw_response: str) -> FeedbackItem:
        text = raw_response.strip()
        message, suggestion = self._split_suggestion(text)
        return FeedbackItem(
            severity=Severity.SUGGESTION,
            category=Category.GENERAL,
            message=message,
            suggestion=suggestion,
        )

    @staticmethod
    def _severity(text: str) -> Severity:
        label = SEVERITY_LABEL.match(text)
        if label:
            return Severity(label.group(1).capitalize())
        for severity, pattern in SEVERITY_KEYWORDS:
            if pattern.search(text):
                return severity
        return Severity.SUGGESTION

    @staticmethod
    def _category(text: str) -> Category:
        for category, pattern in CATEGORY_KEYWORDS:
            if pattern.search(text):
                return category
        return Category.GENERAL

    @staticmethod
    def _split_suggestion(text: str) -> Tuple[str, Optional[str]]:
        for pattern in SUGGESTION_PATTERNS:
            position = 0
            while True:
                match = pattern.search(text, position)
                if not match:
                    break
                message = LEADING_LABEL.sub("", text[:match.start()], count=1).strip()
                if message:
                    suggestion = match.group(1).strip()
                    return message, suggestion or None
                # Only a label precedes the phrase; look for a later one
                position = match.start(1)
        return _clean_message(text), None

    @staticmethod
    def _file_path(text: str) -> Optional[str]:
        for pattern in FILE_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).rstrip(".,;)")
        return None

    @staticmethod
    def _line_number(text: str) -> Optional[int]:
        for pattern in LINE_PATTERNS:
            match = pattern.search(text)
            if match:
                number = int(match.group(1))
                if number > 0:
                    return number
        return None

    @staticmethod
    def _code_snippet(text: str) -> Optional[str]:
        match = CODE_FENCE.search(text)
        if match:
            return match.group(1).rstrip() or None
        return None


def _clean_message(text: str) -> str:
    cleaned = LEADING_LABEL.sub("", text, count=1).strip()
    return cleaned or text.strip()


def _end_at_blank_line(text: str) -> str:
    lines = []
    in_fence = False
    for line in text.split("\n"):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
        elif not in_fence and not line.strip() and any(kept.strip() for kept in lines):
            break
        lines.append(line)
    return "\n".join(lines)
