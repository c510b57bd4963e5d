"""In-memory analysis state: records, results and feedback items."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class AnalysisStatus(str, Enum):
    STARTING = "Starting"
    READING_CHANGES = "ReadingChanges"
    LOADING_DOCUMENTS = "LoadingDocuments"
    CALLING_AI = "CallingAI"
    COMPLETE = "Complete"
    ERROR = "Error"
    # Pseudo states, never stored in the cache
    NOT_STARTED = "NotStarted"
    NOT_FOUND = "NotFound"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETE, AnalysisStatus.ERROR)

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.get(self, -1)


_STATUS_ORDER = {
    AnalysisStatus.STARTING: 0,
    AnalysisStatus.READING_CHANGES: 1,
    AnalysisStatus.LOADING_DOCUMENTS: 2,
    AnalysisStatus.CALLING_AI: 3,
    AnalysisStatus.COMPLETE: 4,
    AnalysisStatus.ERROR: 4,
}


class Severity(str, Enum):
    CRITICAL = "Critical"
    WARNING = "Warning"
    SUGGESTION = "Suggestion"
    STYLE = "Style"
    INFO = "Info"


class Category(str, Enum):
    SECURITY = "Security"
    PERFORMANCE = "Performance"
    STYLE = "Style"
    ERROR_HANDLING = "ErrorHandling"
    GENERAL = "General"
    MAINTAINABILITY = "Maintainability"
    READABILITY = "Readability"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FeedbackItem:
    severity: Severity
    category: Category
    message: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    suggestion: Optional[str] = None
    code_snippet: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "suggestion": self.suggestion,
            "code_snippet": self.code_snippet,
        }


@dataclass(frozen=True)
class AnalysisResults:
    """Outcome of a finished analysis as shown to the client."""

    analysis_id: str
    feedback: List[FeedbackItem] = field(default_factory=list)
    raw_diff: str = ""
    raw_response: str = ""
    is_file_content: bool = False
    created_at: datetime = field(default_factory=utcnow)
    is_complete: bool = True
    error: Optional[str] = None

    def summary(self) -> Dict[str, int]:
        counts = {severity.value.lower(): 0 for severity in Severity}
        for item in self.feedback:
            counts[item.severity.value.lower()] += 1
        counts["total"] = len(self.feedback)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "feedback": [item.to_dict() for item in self.feedback],
            "raw_diff": self.raw_diff,
            "raw_response": self.raw_response,
            "is_file_content": self.is_file_content,
            "summary": self.summary(),
            "created_at": self.created_at.isoformat(),
            "is_complete": self.is_complete,
            "error": self.error,
        }


@dataclass(frozen=True)
class AnalysisContent:
    """Extracted diff or file text kept next to the record for later display."""

    content: str
    is_file_content: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"content": self.content, "is_file_content": self.is_file_content}


@dataclass(frozen=True)
class AnalysisRecord:
    """State of one analysis.

    Records are immutable; every transition returns a new instance. A terminal
    record carries exactly one of ``result`` or ``error``.
    """

    analysis_id: str
    status: AnalysisStatus = AnalysisStatus.STARTING
    result: Optional[AnalysisResults] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    model_used: Optional[str] = None
    fallback_model: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    def with_status(
        self,
        status: AnalysisStatus,
        model_used: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ) -> "AnalysisRecord":
        if status.is_terminal:
            raise ValueError("Use complete() or fail() to enter a terminal state")
        return replace(
            self,
            status=status,
            model_used=model_used if model_used is not None else self.model_used,
            fallback_model=fallback_model if fallback_model is not None else self.fallback_model,
        )

    def complete(self, result: AnalysisResults, model_used: Optional[str] = None) -> "AnalysisRecord":
        return replace(
            self,
            status=AnalysisStatus.COMPLETE,
            result=result,
            error=None,
            completed_at=utcnow(),
            model_used=model_used if model_used is not None else self.model_used,
        )

    def fail(self, message: str, model_used: Optional[str] = None) -> "AnalysisRecord":
        return replace(
            self,
            status=AnalysisStatus.ERROR,
            result=None,
            error=message or "Unknown error",
            completed_at=utcnow(),
            model_used=model_used if model_used is not None else self.model_used,
        )

    def to_status(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "is_complete": self.is_complete,
            "model_used": self.model_used,
            "fallback_model": self.fallback_model,
        }


def pseudo_status(analysis_id: Optional[str], status: AnalysisStatus) -> Dict[str, Any]:
    """Status payload for ids that have no record."""
    if status == AnalysisStatus.NOT_FOUND:
        return {
            "analysis_id": analysis_id,
            "status": status.value,
            "result": None,
            "error": "Analysis not found or expired",
            "is_complete": True,
            "model_used": None,
            "fallback_model": None,
        }
    return {
        "analysis_id": analysis_id,
        "status": status.value,
        "result": None,
        "error": None,
        "is_complete": False,
        "model_used": None,
        "fallback_model": None,
    }
