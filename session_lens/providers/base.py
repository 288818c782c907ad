"""Base class for session providers and the parsing helpers they share."""

import json
import logging
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Iterator, Optional

from ..config import MAX_FILE_SIZE, TITLE_LENGTH
from ..models import OK, SessionDetail, SessionEvent, SessionMeta, LoadResult
from ..timeutil import estimate_duration

logger = logging.getLogger(__name__)

# Canonical tool vocabulary
TOOL_ALIASES = {
    "Edit": "edit_file",
    "MultiEdit": "edit_file",
    "Read": "read_file",
    "Write": "write_file",
    "Bash": "bash",
    "Search": "search",
    "Glob": "glob",
    "Grep": "grep",
    "WebSearch": "web_search",
    "WebFetch": "web_fetch",
    "TodoRead": "todo",
    "TodoWrite": "todo",
}


def normalize_tool_name(name: str, aliases: Optional[dict[str, str]] = None) -> str:
    """Map a source-specific tool identifier onto the canonical vocabulary.

    ``mcp__server__tool`` and ``server::tool`` become ``server.tool``; names
    that match nothing pass through unchanged.
    """
    if not name:
        return name
    table = TOOL_ALIASES if aliases is None else aliases
    if name in table:
        return table[name]
    if name.startswith("mcp__"):
        parts = name.split("__")
        return f"{parts[1]}.{'.'.join(parts[2:])}" if len(parts) >= 3 else name
    if "::" in name:
        server, _, tool = name.partition("::")
        if server and tool:
            return f"{server}.{tool.replace('::', '.')}"
    return name


def derive_title(explicit: Optional[str], first_user_message: Optional[str]) -> Optional[str]:
    """Prefer an explicit summary, else the first user message cut to TITLE_LENGTH."""
    if isinstance(explicit, str) and explicit.strip():
        return explicit
    if isinstance(first_user_message, str) and first_user_message.strip():
        return first_user_message.strip()[:TITLE_LENGTH]
    return None


def summarize_events(events: list[SessionEvent]) -> tuple[dict[str, int], float]:
    """Return (event counts by type, gap-capped duration) for a timeline."""
    counts = dict(Counter(e.type for e in events))
    timestamps = [ms for ms in (e.timestamp_ms for e in events) if ms is not None]
    return counts, estimate_duration(timestamps)


def is_oversized(path: Path) -> bool:
    try:
        return path.stat().st_size > MAX_FILE_SIZE
    except OSError:
        return False


def iter_jsonl(path: Path) -> Iterator[dict]:
    """Yield each JSON object line of ``path``; malformed lines are skipped.

    Raises OSError if the file cannot be opened.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                yield data


def read_tail_lines(path: Path, size: int = 2048) -> list[str]:
    """Last non-empty lines within the final ``size`` bytes of ``path``."""
    try:
        with open(path, "rb") as f:
            f.seek(0, 2)
            end = f.tell()
            f.seek(max(0, end - size))
            tail = f.read().decode("utf-8", errors="replace")
    except OSError:
        return []
    return [line for line in tail.rstrip().split("\n") if line.strip()]


class SessionProvider(ABC):
    """Abstract base class for session providers.

    Each assistant (Copilot CLI, VS Code, Claude Code) implements this
    interface. Every operation is total for expected failures: missing
    roots, unreadable or malformed files and oversized payloads produce an
    empty list, False, or None instead of an exception.
    """

    # Provider identity
    name: str = ""  # also the SessionMeta.source value
    display_name: str = ""
    icon: str = ""
    color: str = ""

    @abstractmethod
    def get_sessions_dir(self) -> Path:
        """Return the directory where sessions are stored."""
        ...

    def is_available(self) -> bool:
        """Check if this provider's sessions directory exists."""
        return self.get_sessions_dir().exists()

    @abstractmethod
    def scan(self) -> list[LoadResult]:
        """Read lightweight metadata for every discoverable session.

        Returns one LoadResult per candidate so callers can see why a
        candidate was skipped.
        """
        ...

    def list_metadata(self) -> list[SessionMeta]:
        """Metadata for every listable session of this provider."""
        sessions = []
        for result in self.scan():
            if result.ok:
                sessions.append(result.value)
            else:
                logger.debug("%s: skipped %s (%s)", self.name, result.session_id, result.reason)
        return sessions

    @abstractmethod
    def is_member(self, session_id: str) -> bool:
        """Cheap check whether ``session_id`` belongs to this provider."""
        ...

    @abstractmethod
    def load(self, session_id: str) -> LoadResult:
        """Fully parse one session into a SessionDetail."""
        ...

    def load_detail(self, session_id: str) -> SessionDetail | None:
        result = self.load(session_id)
        if result.reason != OK:
            logger.debug("%s: could not load %s (%s)", self.name, session_id, result.reason)
        return result.value if result.ok else None

    @abstractmethod
    def get_resume_command(self, session: SessionMeta) -> str:
        """Get the command to resume a session."""
        ...
