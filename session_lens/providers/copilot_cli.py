"""GitHub Copilot CLI session provider.

Each session is a directory under ``~/.copilot/session-state``::

    <session-id>/
        workspace.yaml                  small metadata file
        events.jsonl                    append-only event log
        session.db                      present while the session is open
        plan.md                         optional plan
        rewind-snapshots/index.json     optional snapshots
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import yaml

from .. import config
from ..models import (
    COMPLETED,
    CORRUPT,
    ERROR,
    NO_USER_MESSAGE,
    NOT_FOUND,
    OVERSIZE,
    RUNNING,
    SOURCE_CLI,
    TOOL_START,
    USER_MESSAGE,
    LoadResult,
    SessionDetail,
    SessionEvent,
    SessionMeta,
)
from ..redaction import redact
from ..timeutil import file_age_ms, normalize_iso
from . import register_provider
from .base import SessionProvider, derive_title, is_oversized, iter_jsonl, normalize_tool_name, read_tail_lines, summarize_events

logger = logging.getLogger(__name__)

WORKSPACE_FILE = "workspace.yaml"
EVENTS_FILE = "events.jsonl"
SESSION_DB_FILE = "session.db"
PLAN_FILE = "plan.md"
SNAPSHOT_INDEX = Path("rewind-snapshots") / "index.json"

USER_CANCELLED = "user initiated"
EVENT_TEXT_KEYS = ("content", "transformedContent", "text", "result")

CLI_TOOL_ALIASES = {
    "view": "read_file",
    "edit": "edit_file",
    "str_replace_editor": "edit_file",
    "create": "write_file",
    "bash": "bash",
    "grep": "grep",
    "glob": "glob",
    "web_fetch": "web_fetch",
    "web_search": "web_search",
}


def yaml_text(value) -> str:
    """Render a workspace.yaml scalar as a string (YAML may hand back datetimes)."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return normalize_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def load_workspace(path: Path) -> Optional[dict]:
    """Parse workspace.yaml; None when it is unreadable or not a mapping."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        return None
    return data if isinstance(data, dict) else None


def data_of(event: dict) -> dict:
    """The event's ``data`` payload; anything but a mapping counts as empty."""
    data = event.get("data")
    return data if isinstance(data, dict) else {}


def detect_status(session_dir: Path, now: Optional[float] = None) -> str:
    """Classify a session as running, completed or error from file state."""
    db_age = file_age_ms(session_dir / SESSION_DB_FILE, now)
    if db_age is not None and db_age < config.RECENT_MARKER_MS:
        return RUNNING

    events_path = session_dir / EVENTS_FILE
    if not events_path.exists():
        # workspace.yaml alone means the session never became active
        return COMPLETED

    for line in read_tail_lines(events_path)[-5:]:
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(event, dict) and event.get("type") == "abort":
            data = data_of(event)
            return COMPLETED if data.get("reason") == USER_CANCELLED else ERROR

    age = file_age_ms(events_path, now)
    if age is not None and age < config.RECENT_ACTIVITY_MS:
        return RUNNING
    return COMPLETED


def find_first_user_message(events_path: Path) -> Optional[str]:
    """Content of the first user.message event, or None if there is none.

    Only lines mentioning the event type are decoded, so the scan stays cheap
    for long logs.
    """
    with open(events_path, encoding="utf-8", errors="replace") as f:
        for line in f:
            if f'"{USER_MESSAGE}"' not in line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(event, dict) and event.get("type") == USER_MESSAGE:
                data = data_of(event)
                content = data.get("content") or data.get("transformedContent") or ""
                return content if isinstance(content, str) else ""
    return None


def to_event(raw: dict) -> SessionEvent:
    """Convert one events.jsonl record into a SessionEvent."""
    data = raw.get("data")
    data = redact(data, EVENT_TEXT_KEYS) if isinstance(data, dict) else {}
    event_type = str(raw.get("type") or "")
    if event_type == TOOL_START and "tool" not in data:
        raw_name = data.get("toolName") or ""
        data["tool"] = normalize_tool_name(raw_name, CLI_TOOL_ALIASES) if raw_name else "unknown"
    timestamp = raw.get("timestamp")
    return SessionEvent(
        type=event_type,
        id=str(raw.get("id") or ""),
        timestamp=timestamp if isinstance(timestamp, str) else normalize_iso(timestamp),
        data=data,
    )


@register_provider
class CopilotCliProvider(SessionProvider):
    """Provider for GitHub Copilot CLI sessions."""

    name = SOURCE_CLI
    display_name = "Copilot CLI"
    icon = "✈"
    color = "green"

    def __init__(self, root: Optional[Path] = None):
        self.root = root

    def get_sessions_dir(self) -> Path:
        return self.root if self.root is not None else config.copilot_sessions_dir()

    def _session_dir(self, session_id: str) -> Optional[Path]:
        if not session_id or "/" in session_id or "\\" in session_id or session_id in (".", ".."):
            return None
        return self.get_sessions_dir() / session_id

    def _meta(self, ws: dict, session_dir: Path, title: Optional[str], now: Optional[float] = None) -> dict:
        summary_count = ws.get("summary_count")
        return dict(
            id=yaml_text(ws.get("id")) or session_dir.name,
            source=self.name,
            working_directory=yaml_text(ws.get("cwd")),
            repository_root=yaml_text(ws.get("git_root")) or None,
            branch=yaml_text(ws.get("branch")) or None,
            created_at=yaml_text(ws.get("created_at")),
            updated_at=yaml_text(ws.get("updated_at")),
            status=detect_status(session_dir, now),
            title=title,
            summary_count=summary_count if isinstance(summary_count, int) else None,
        )

    def scan(self, now: Optional[float] = None) -> list[LoadResult]:
        root = self.get_sessions_dir()
        try:
            entries = sorted(p for p in root.iterdir() if p.is_dir())
        except OSError:
            return []

        results = []
        for session_dir in entries:
            ws_path = session_dir / WORKSPACE_FILE
            if not ws_path.is_file():
                continue
            try:
                results.append(self._scan_one(session_dir, ws_path, now))
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug("Malformed session %s: %s", session_dir.name, e)
                results.append(LoadResult.skipped(CORRUPT, session_dir.name))
        return results

    def _scan_one(self, session_dir: Path, ws_path: Path, now: Optional[float]) -> LoadResult:
        session_id = session_dir.name
        ws = load_workspace(ws_path)
        if ws is None:
            return LoadResult.skipped(CORRUPT, session_id)

        events_path = session_dir / EVENTS_FILE
        if not events_path.is_file():
            return LoadResult.skipped(NO_USER_MESSAGE, session_id)
        if is_oversized(events_path):
            return LoadResult.skipped(OVERSIZE, session_id)
        try:
            first_message = find_first_user_message(events_path)
        except OSError:
            return LoadResult.skipped(CORRUPT, session_id)
        if first_message is None:
            return LoadResult.skipped(NO_USER_MESSAGE, session_id)

        title = derive_title(ws.get("summary"), first_message)
        meta = SessionMeta(**self._meta(ws, session_dir, title, now))
        return LoadResult(meta, session_id=session_id)

    def is_member(self, session_id: str) -> bool:
        session_dir = self._session_dir(session_id)
        return session_dir is not None and (session_dir / WORKSPACE_FILE).is_file()

    def load(self, session_id: str, now: Optional[float] = None) -> LoadResult:
        session_dir = self._session_dir(session_id)
        if session_dir is None or not (session_dir / WORKSPACE_FILE).is_file():
            return LoadResult.skipped(NOT_FOUND, session_id)
        try:
            return self._load(session_dir, session_id, now)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug("Malformed session %s: %s", session_id, e)
            return LoadResult.skipped(CORRUPT, session_id)

    def _load(self, session_dir: Path, session_id: str, now: Optional[float]) -> LoadResult:
        ws = load_workspace(session_dir / WORKSPACE_FILE)
        if ws is None:
            return LoadResult.skipped(CORRUPT, session_id)

        events_path = session_dir / EVENTS_FILE
        if is_oversized(events_path):
            return LoadResult.skipped(OVERSIZE, session_id)
        events: list[SessionEvent] = []
        if events_path.is_file():
            try:
                events = [to_event(raw) for raw in iter_jsonl(events_path)]
            except OSError:
                # file may be locked by the running session
                logger.debug("Could not read %s", events_path)

        plan_content = None
        plan_path = session_dir / PLAN_FILE
        if plan_path.is_file():
            try:
                plan_content = plan_path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                pass

        version = None
        model = None
        first_message = None
        for event in events:
            if event.type == "session.start" and version is None:
                version = event.data.get("copilotVersion")
            elif event.type == "session.model_change" and event.data.get("newModel"):
                model = event.data["newModel"]
            elif event.type == USER_MESSAGE and first_message is None:
                first_message = event.content or event.data.get("transformedContent") or ""

        event_counts, duration = summarize_events(events)
        detail = SessionDetail(
            **self._meta(ws, session_dir, derive_title(ws.get("summary"), first_message), now),
            events=events,
            plan_content=plan_content,
            has_snapshots=(session_dir / SNAPSHOT_INDEX).is_file(),
            version=version,
            model=model,
            event_counts=event_counts,
            duration=duration,
        )
        return LoadResult(detail, session_id=session_id)

    def get_resume_command(self, session: SessionMeta) -> str:
        return f"copilot --resume {session.id}"
