"""Claude Code session provider.

Transcripts live at ``~/.claude/projects/<encoded-cwd>/<session-id>.jsonl``.
Entries link to their parent through ``parentUuid``; side-chain (sub-agent)
and compact-summary entries are kept on disk but left out of the timeline.
"""

import logging
from pathlib import Path
from typing import Optional

from .. import config
from ..models import (
    ASSISTANT_MESSAGE,
    COMPLETED,
    CORRUPT,
    NO_USER_MESSAGE,
    NOT_FOUND,
    OVERSIZE,
    RUNNING,
    SOURCE_CLAUDE_CODE,
    TOOL_COMPLETE,
    TOOL_START,
    USER_MESSAGE,
    LoadResult,
    SessionDetail,
    SessionEvent,
    SessionMeta,
)
from ..redaction import strip_images, truncate_text
from ..timeutil import file_age_ms, ms_to_iso, normalize_iso, parse_timestamp_ms
from . import register_provider
from .base import SessionProvider, derive_title, is_oversized, iter_jsonl, normalize_tool_name, summarize_events

logger = logging.getLogger(__name__)

MESSAGE_ENTRY_TYPES = ("user", "assistant")


def decode_project_path(encoded: str) -> str:
    """Decode a project directory name back to an approximate path.

    Lossy: dashes inside directory names also become separators. Prefer the
    ``cwd`` recorded in the transcript.
    """
    return encoded.replace("-", "/")


def parse_entries(path: Path) -> Optional[list[dict]]:
    """All JSON entries of a transcript; None when the file is oversized."""
    if is_oversized(path):
        return None
    return list(iter_jsonl(path))


def is_timeline_entry(entry: dict) -> bool:
    return not entry.get("isSidechain") and not entry.get("isCompactSummary")


def message_of(entry: dict) -> dict:
    message = entry.get("message")
    return message if isinstance(message, dict) else {}


def has_user_message(entries: list[dict]) -> bool:
    return any(
        entry.get("type") == "user" and is_timeline_entry(entry) and message_of(entry).get("content")
        for entry in entries
    )


def block_text(content) -> str:
    """Flatten tool_result content, which may be a string or a list of blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(b.get("text", "") for b in content if isinstance(b, dict) and isinstance(b.get("text"), str))
    return ""


def entries_to_events(entries: list[dict]) -> list[SessionEvent]:
    """Convert transcript entries into canonical timeline events."""
    events: list[SessionEvent] = []
    tool_names: dict[str, str] = {}

    for entry in entries:
        if not is_timeline_entry(entry):
            continue
        entry_type = entry.get("type")
        if entry_type not in MESSAGE_ENTRY_TYPES:
            continue

        ts = entry.get("timestamp")
        ts = ts if isinstance(ts, str) else normalize_iso(ts)
        entry_id = str(entry.get("uuid") or "")
        parent_id = entry.get("parentUuid")
        message = message_of(entry)
        content = message.get("content")

        if entry_type == "user":
            if isinstance(content, str):
                if content.strip():
                    events.append(SessionEvent(USER_MESSAGE, entry_id, ts, {"content": truncate_text(content), "parentId": parent_id}))
                continue
            for block in content if isinstance(content, list) else []:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text" and isinstance(block.get("text"), str) and block["text"].strip():
                    events.append(SessionEvent(USER_MESSAGE, entry_id, ts, {"content": truncate_text(block["text"]), "parentId": parent_id}))
                elif block.get("type") == "tool_result":
                    call_id = str(block.get("tool_use_id") or entry_id)
                    events.append(SessionEvent(TOOL_COMPLETE, call_id, ts, {
                        "tool": tool_names.get(call_id, "unknown"),
                        "result": truncate_text(block_text(block.get("content"))),
                        "success": not block.get("is_error", False),
                        "parentId": parent_id,
                    }))
        else:
            model = entry.get("model") or message.get("model")
            cost = entry.get("costUSD")
            if isinstance(content, str):
                if content.strip():
                    events.append(SessionEvent(ASSISTANT_MESSAGE, entry_id, ts, {
                        "content": truncate_text(content), "model": model, "costUSD": cost, "parentId": parent_id,
                    }))
                continue
            for block in content if isinstance(content, list) else []:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "text" and isinstance(block.get("text"), str) and block["text"].strip():
                    events.append(SessionEvent(ASSISTANT_MESSAGE, entry_id, ts, {
                        "content": truncate_text(block["text"]), "model": model, "costUSD": cost, "parentId": parent_id,
                    }))
                elif block.get("type") == "tool_use":
                    raw_name = block.get("name")
                    raw_name = raw_name if isinstance(raw_name, str) and raw_name else "unknown"
                    tool = normalize_tool_name(raw_name)
                    call_id = str(block.get("id") or entry_id)
                    tool_names[call_id] = tool
                    tool_input = block.get("input")
                    events.append(SessionEvent(TOOL_START, call_id, ts, {
                        "tool": tool,
                        "toolName": tool,
                        "rawName": raw_name,
                        "input": strip_images(tool_input) if isinstance(tool_input, dict) else tool_input,
                        "parentId": parent_id,
                    }))

    return events


def detect_status(path: Path, now: Optional[float] = None) -> str:
    """A transcript written to within the last five minutes is running."""
    age = file_age_ms(path, now)
    if age is not None and age < config.RECENT_ACTIVITY_MS:
        return RUNNING
    return COMPLETED


def first_summary(entries: list[dict]) -> Optional[str]:
    for entry in entries:
        if entry.get("type") == "summary" and entry.get("summary"):
            return entry["summary"]
    return None


def first_user_text(entries: list[dict]) -> Optional[str]:
    for entry in entries:
        if entry.get("type") != "user" or not is_timeline_entry(entry):
            continue
        content = message_of(entry).get("content")
        if isinstance(content, str) and content.strip():
            return content
    return None


def timed_range(entries: list[dict]) -> tuple[str, str]:
    """(created_at, updated_at) from the valid user/assistant timestamps."""
    stamps = sorted(
        ms for ms in (
            parse_timestamp_ms(e.get("timestamp")) for e in entries if e.get("type") in MESSAGE_ENTRY_TYPES
        ) if ms is not None
    )
    if not stamps:
        return "", ""
    return ms_to_iso(stamps[0]), ms_to_iso(stamps[-1])


def first_value(entries: list[dict], key: str) -> Optional[str]:
    for entry in entries:
        value = entry.get(key)
        if isinstance(value, str) and value:
            return value
    return None


@register_provider
class ClaudeCodeProvider(SessionProvider):
    """Provider for Claude Code sessions."""

    name = SOURCE_CLAUDE_CODE
    display_name = "Claude Code"
    icon = "🧠"
    color = "cyan"

    def __init__(self, root: Optional[Path] = None):
        self.root = root
        self._known_ids: set[str] = set()

    def get_sessions_dir(self) -> Path:
        return self.root if self.root is not None else config.claude_projects_dir()

    def discover_session_files(self) -> list[Path]:
        """Discover all JSONL transcripts, one project directory deep."""
        sessions_dir = self.get_sessions_dir()
        files = []
        try:
            project_dirs = sorted(p for p in sessions_dir.iterdir() if p.is_dir())
        except OSError:
            return files
        for project_dir in project_dirs:
            try:
                files.extend(sorted(p for p in project_dir.glob("*.jsonl") if p.is_file()))
            except OSError:
                continue
        return files

    def find_session_file(self, session_id: str) -> Optional[Path]:
        if not session_id or "/" in session_id or "\\" in session_id or session_id in (".", ".."):
            return None
        try:
            project_dirs = sorted(p for p in self.get_sessions_dir().iterdir() if p.is_dir())
        except OSError:
            return None
        for project_dir in project_dirs:
            candidate = project_dir / f"{session_id}.jsonl"
            if candidate.is_file():
                return candidate
        return None

    def scan(self, now: Optional[float] = None) -> list[LoadResult]:
        results = []
        for path in self.discover_session_files():
            try:
                results.append(self._scan_one(path, now))
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug("Malformed transcript %s: %s", path, e)
                results.append(LoadResult.skipped(CORRUPT, path.stem))
        return results

    def _scan_one(self, path: Path, now: Optional[float]) -> LoadResult:
        session_id = path.stem
        try:
            entries = parse_entries(path)
        except OSError:
            return LoadResult.skipped(CORRUPT, session_id)
        if entries is None:
            return LoadResult.skipped(OVERSIZE, session_id)
        if not entries:
            return LoadResult.skipped(CORRUPT, session_id)

        created_at, updated_at = timed_range(entries)
        if not created_at or not has_user_message(entries):
            return LoadResult.skipped(NO_USER_MESSAGE, session_id)

        self._known_ids.add(session_id)
        meta = SessionMeta(**self._meta(path, entries, now))
        return LoadResult(meta, session_id=session_id)

    def _meta(self, path: Path, entries: list[dict], now: Optional[float]) -> dict:
        created_at, updated_at = timed_range(entries)
        return dict(
            id=path.stem,
            source=self.name,
            working_directory=first_value(entries, "cwd") or decode_project_path(path.parent.name),
            branch=first_value(entries, "gitBranch"),
            created_at=created_at,
            updated_at=updated_at,
            status=detect_status(path, now),
            title=derive_title(first_summary(entries), first_user_text(entries)),
        )

    def is_member(self, session_id: str) -> bool:
        if session_id in self._known_ids:
            return True
        return self.find_session_file(session_id) is not None

    def load(self, session_id: str, now: Optional[float] = None) -> LoadResult:
        path = self.find_session_file(session_id)
        if path is None:
            return LoadResult.skipped(NOT_FOUND, session_id)
        try:
            entries = parse_entries(path)
        except OSError:
            return LoadResult.skipped(NOT_FOUND, session_id)
        if entries is None:
            return LoadResult.skipped(OVERSIZE, session_id)
        if not entries:
            return LoadResult.skipped(CORRUPT, session_id)
        try:
            return self._load(path, session_id, entries, now)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug("Malformed transcript %s: %s", path, e)
            return LoadResult.skipped(CORRUPT, session_id)

    def _load(self, path: Path, session_id: str, entries: list[dict], now: Optional[float]) -> LoadResult:
        events = entries_to_events(entries)
        event_counts, duration = summarize_events(events)
        model = next((e.data["model"] for e in events if e.type == ASSISTANT_MESSAGE and e.data.get("model")), None)

        detail = SessionDetail(
            **self._meta(path, entries, now),
            events=events,
            version=first_value(entries, "version"),
            model=model,
            event_counts=event_counts,
            duration=duration,
        )
        return LoadResult(detail, session_id=session_id)

    def get_resume_command(self, session: SessionMeta) -> str:
        return f"claude --resume {session.id}"
