"""Canonical session model shared by all providers."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .timeutil import parse_timestamp_ms

# Session status
RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"

# Sources
SOURCE_CLI = "cli"
SOURCE_VSCODE = "vscode"
SOURCE_CLAUDE_CODE = "claude-code"

# Canonical event types
USER_MESSAGE = "user.message"
ASSISTANT_MESSAGE = "assistant.message"
TOOL_START = "tool.execution_start"
TOOL_COMPLETE = "tool.execution_complete"
TURN_START = "assistant.turn_start"

MESSAGE_TYPES = (USER_MESSAGE, ASSISTANT_MESSAGE)

# LoadResult reasons
OK = "ok"
NOT_FOUND = "not-found"
OVERSIZE = "oversize"
CORRUPT = "corrupt"
NO_USER_MESSAGE = "no-user-message"
EMPTY = "empty"


@dataclass
class SessionMeta:
    """One row in a session list."""

    # Identity (unique per source only)
    id: str
    source: str  # "cli", "vscode", "claude-code"

    # Project context
    working_directory: str = ""
    repository_root: Optional[str] = None
    branch: Optional[str] = None

    # Timing (ISO-8601 or "")
    created_at: str = ""
    updated_at: str = ""

    status: str = COMPLETED
    title: Optional[str] = None
    summary_count: Optional[int] = None

    def __post_init__(self):
        created = parse_timestamp_ms(self.created_at)
        updated = parse_timestamp_ms(self.updated_at)
        if created is not None and updated is not None and updated < created:
            self.updated_at = self.created_at

    @property
    def qualified_id(self) -> str:
        return f"{self.source}:{self.id}"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "source": self.source,
            "workingDirectory": self.working_directory,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "status": self.status,
        }
        if self.repository_root is not None:
            data["repositoryRoot"] = self.repository_root
        if self.branch is not None:
            data["branch"] = self.branch
        if self.title is not None:
            data["title"] = self.title
        if self.summary_count is not None:
            data["summaryCount"] = self.summary_count
        return data


@dataclass
class SessionEvent:
    """One normalized timeline entry."""

    type: str
    id: str = ""
    timestamp: str = ""
    data: dict = field(default_factory=dict)

    @property
    def timestamp_ms(self) -> Optional[float]:
        return parse_timestamp_ms(self.timestamp)

    @property
    def content(self) -> str:
        value = self.data.get("content")
        return value if isinstance(value, str) else ""

    def to_dict(self) -> dict:
        return {"type": self.type, "id": self.id, "timestamp": self.timestamp, "data": self.data}


@dataclass
class SessionDetail(SessionMeta):
    """Full session: metadata plus the parsed timeline."""

    events: list[SessionEvent] = field(default_factory=list)
    plan_content: Optional[str] = None
    has_snapshots: bool = False
    version: Optional[str] = None
    model: Optional[str] = None
    event_counts: dict[str, int] = field(default_factory=dict)
    duration: float = 0  # milliseconds, gap-capped

    def messages(self) -> list[SessionEvent]:
        return [e for e in self.events if e.type in MESSAGE_TYPES]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "events": [e.to_dict() for e in self.events],
            "hasSnapshots": self.has_snapshots,
            "eventCounts": self.event_counts,
            "duration": self.duration,
        })
        if self.plan_content is not None:
            data["planContent"] = self.plan_content
        if self.version is not None:
            data["version"] = self.version
        if self.model is not None:
            data["model"] = self.model
        return data


@dataclass
class LoadResult:
    """Outcome of loading one session: the value, or the reason there is none."""

    value: Any
    reason: str = OK
    session_id: str = ""

    @property
    def ok(self) -> bool:
        return self.reason == OK and self.value is not None

    @classmethod
    def skipped(cls, reason: str, session_id: str = "") -> "LoadResult":
        return cls(value=None, reason=reason, session_id=session_id)


@dataclass
class SearchEntry:
    """Searchable projection of a SessionDetail."""

    id: str
    source: str
    title: str
    working_directory: str
    date: str
    content: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "title": self.title,
            "workingDirectory": self.working_directory,
            "date": self.date,
            "content": self.content,
        }


@dataclass
class SearchResult:
    """A ranked search hit with up to three highlighted snippets."""

    entry: SearchEntry
    score: float
    highlights: list[str] = field(default_factory=list)

    @property
    def session_id(self) -> str:
        return self.entry.id

    def to_dict(self) -> dict:
        return {"entry": self.entry.to_dict(), "score": self.score, "highlights": self.highlights}


@dataclass
class Analytics:
    """Aggregate statistics across every listed session."""

    total_sessions: int = 0
    sessions_per_day: dict[str, int] = field(default_factory=dict)
    avg_duration: float = 0
    min_duration: float = 0
    max_duration: float = 0
    total_duration: float = 0
    tool_usage: dict[str, int] = field(default_factory=dict)
    top_directories: dict[str, int] = field(default_factory=dict)
    branch_time: dict[str, float] = field(default_factory=dict)
    repo_time: dict[str, float] = field(default_factory=dict)
    model_usage: dict[str, int] = field(default_factory=dict)
    mcp_servers: dict[str, int] = field(default_factory=dict)
    tool_success_rate: dict[str, dict[str, int]] = field(default_factory=dict)
    turns_per_session: list[int] = field(default_factory=list)
    hour_of_day: dict[str, int] = field(default_factory=dict)
    error_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "totalSessions": self.total_sessions,
            "sessionsPerDay": self.sessions_per_day,
            "avgDuration": self.avg_duration,
            "minDuration": self.min_duration,
            "maxDuration": self.max_duration,
            "totalDuration": self.total_duration,
            "toolUsage": self.tool_usage,
            "topDirectories": self.top_directories,
            "branchTime": self.branch_time,
            "repoTime": self.repo_time,
            "modelUsage": self.model_usage,
            "mcpServers": self.mcp_servers,
            "toolSuccessRate": self.tool_success_rate,
            "turnsPerSession": self.turns_per_session,
            "hourOfDay": self.hour_of_day,
            "errorTypes": self.error_types,
        }
