"""Data models for enriched sprint data and summary results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sprint_format import percent_of

DONE_PATTERN = re.compile(r'done|closed|resolved', re.IGNORECASE)
OVER_ESTIMATE_FACTOR = 1.3


class SprintDataError(ValueError):
    """Raised when enriched sprint data is structurally invalid."""


def _entries(data: Dict[str, Any], key: str) -> List[Any]:
    """The list stored under key; absent or null counts as empty."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SprintDataError(f"{key} must be a list, got {type(value).__name__}")
    return value


def _seconds(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SprintDataError(f"{key} must be a number of seconds, got {value!r}")
    return int(value)


class Backend(str, Enum):
    """Summarization backends, in default priority order."""

    GEMINI = "gemini"
    OLLAMA = "ollama"
    RULE_BASED = "rule-based"

    @property
    def category(self) -> str:
        return _BACKEND_CATEGORIES[self]

    @classmethod
    def parse(cls, value) -> Optional["Backend"]:
        """Return the backend for a name, or None if the name is unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


_BACKEND_CATEGORIES = {
    Backend.GEMINI: "cloud",
    Backend.OLLAMA: "local",
    Backend.RULE_BASED: "fallback",
}


@dataclass(frozen=True)
class Sprint:
    id: Any
    name: str
    goal: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sprint":
        if not isinstance(data, dict):
            raise SprintDataError("Missing enriched sprint data")
        return cls(
            id=data.get("id"),
            name=data.get("name") or f"Sprint {data.get('id', '')}".strip(),
            goal=data.get("goal") or None,
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            state=data.get("state"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name}
        for key, value in (("goal", self.goal), ("startDate", self.start_date),
                           ("endDate", self.end_date), ("state", self.state)):
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class StatusChange:
    from_status: str
    to_status: str
    date: Optional[str] = None
    author: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusChange":
        if not isinstance(data, dict):
            raise SprintDataError(f"Malformed status change entry: {data!r}")
        return cls(
            from_status=data.get("from") or "",
            to_status=data.get("to") or "",
            date=data.get("date"),
            author=data.get("author"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"from": self.from_status, "to": self.to_status, "date": self.date}
        if self.author:
            data["author"] = self.author
        return data


@dataclass(frozen=True)
class CommentSummary:
    text: str
    date: Optional[str] = None
    author: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommentSummary":
        if not isinstance(data, dict):
            raise SprintDataError(f"Malformed comment entry: {data!r}")
        return cls(text=data.get("text") or "", date=data.get("date"), author=data.get("author"))

    def to_dict(self) -> Dict[str, Any]:
        data = {"date": self.date, "text": self.text}
        if self.author:
            data["author"] = self.author
        return data


@dataclass(frozen=True)
class EnrichedIssue:
    key: str
    summary: str
    type: str = "Task"
    status: str = "Unknown"
    original_estimate: Optional[int] = None
    time_spent: Optional[int] = None
    status_changes: Tuple[StatusChange, ...] = ()
    comments: Tuple[CommentSummary, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnrichedIssue":
        if not isinstance(data, dict) or not data.get("key"):
            raise SprintDataError(f"Issue entry without a key: {data!r}")
        return cls(
            key=data["key"],
            summary=data.get("summary") or "",
            type=data.get("type") or "Task",
            status=data.get("status") or "Unknown",
            original_estimate=_seconds(data, "originalEstimate"),
            time_spent=_seconds(data, "timeSpent"),
            status_changes=tuple(StatusChange.from_dict(c) for c in _entries(data, "statusChanges")),
            comments=tuple(CommentSummary.from_dict(c) for c in _entries(data, "comments")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "summary": self.summary,
            "type": self.type,
            "status": self.status,
            "originalEstimate": self.original_estimate,
            "timeSpent": self.time_spent,
            "statusChanges": [c.to_dict() for c in self.status_changes],
            "comments": [c.to_dict() for c in self.comments],
        }

    @property
    def is_bug(self) -> bool:
        return "bug" in (self.type or "").lower()

    @property
    def is_done(self) -> bool:
        return bool(DONE_PATTERN.search(self.status or ""))

    @property
    def estimate_ratio(self) -> Optional[int]:
        """Time spent as a percentage of the original estimate, if both are known."""
        return percent_of(self.time_spent, self.original_estimate)

    @property
    def is_over_estimate(self) -> bool:
        if not self.time_spent or not self.original_estimate:
            return False
        return self.time_spent > self.original_estimate * OVER_ESTIMATE_FACTOR


@dataclass(frozen=True)
class EnrichedSprintData:
    sprint: Sprint
    issues: Tuple[EnrichedIssue, ...] = ()
    total_issues: int = 0

    def __post_init__(self):
        if self.sprint is None:
            raise SprintDataError("Missing enriched sprint data")
        seen = set()
        for issue in self.issues:
            if issue.key in seen:
                raise SprintDataError(f"Duplicate issue key in sprint data: {issue.key}")
            seen.add(issue.key)

    @classmethod
    def create(cls, sprint: Sprint, issues: Iterable[EnrichedIssue], total_issues: Optional[int] = None):
        issues = tuple(issues)
        return cls(sprint=sprint, issues=issues,
                   total_issues=len(issues) if total_issues is None else total_issues)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EnrichedSprintData":
        """Build from the JSON shape exchanged with the data source.

        Raises:
            SprintDataError: If the payload or its sprint is missing, or an
                issue entry is malformed.
        """
        if not isinstance(data, dict) or not data.get("sprint"):
            raise SprintDataError("Missing enriched sprint data")
        issues = [EnrichedIssue.from_dict(i) for i in _entries(data, "issues")]
        total = data.get("totalIssues")
        if total is not None:
            if isinstance(total, bool):
                raise SprintDataError(f"totalIssues must be a number, got {total!r}")
            try:
                total = int(total)
            except (TypeError, ValueError) as e:
                raise SprintDataError(f"totalIssues must be a number, got {total!r}") from e
        return cls.create(Sprint.from_dict(data["sprint"]), issues, total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sprint": self.sprint.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "totalIssues": self.total_issues,
        }


@dataclass(frozen=True)
class SummaryResult:
    summary: str
    source: Backend

    def to_dict(self) -> Dict[str, str]:
        return {"summary": self.summary, "source": self.source.value}


@dataclass
class BackendStatus:
    name: Backend
    available: bool
    model: Optional[str] = None
    models: Optional[List[str]] = None
    reason: Optional[str] = None

    @property
    def type(self) -> str:
        return self.name.category

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name.value, "available": self.available, "type": self.type}
        if self.model is not None:
            data["model"] = self.model
        if self.models is not None:
            data["models"] = list(self.models)
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass
class AIStatus:
    providers: List[BackendStatus] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return any(p.available for p in self.providers)

    @property
    def primary(self) -> Optional[Backend]:
        """First available backend in priority order (informational only)."""
        for backend in Backend:
            for provider in self.providers:
                if provider.name is backend and provider.available:
                    return backend
        return None

    def to_dict(self) -> Dict[str, Any]:
        primary = self.primary
        return {
            "available": self.available,
            "providers": [p.to_dict() for p in self.providers],
            "primary": primary.value if primary else None,
        }
