"""VS Code Copilot Chat session provider.

VS Code keeps a session index in its global ``state.vscdb`` SQLite key-value
store and writes one JSON document per chat session, either under
``globalStorage/emptyWindowChatSessions`` or under a workspace's
``workspaceStorage/<hash>/chatSessions`` directory.
"""

import json
import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import unquote, urlparse

from .. import config
from ..models import (
    ASSISTANT_MESSAGE,
    COMPLETED,
    CORRUPT,
    EMPTY,
    NOT_FOUND,
    OVERSIZE,
    RUNNING,
    SOURCE_VSCODE,
    TOOL_COMPLETE,
    TOOL_START,
    TURN_START,
    USER_MESSAGE,
    LoadResult,
    SessionDetail,
    SessionEvent,
    SessionMeta,
)
from ..redaction import redact, truncate_text
from ..timeutil import normalize_iso, now_ms, parse_timestamp_ms
from . import register_provider
from .base import SessionProvider, derive_title, is_oversized, normalize_tool_name, summarize_events

logger = logging.getLogger(__name__)

INDEX_KEY = "chat.ChatSessionStore.index"

VSCODE_TOOL_ALIASES = {
    "copilot_readFile": "read_file",
    "copilot_replaceString": "edit_file",
    "copilot_multiReplaceString": "edit_file",
    "copilot_insertEdit": "edit_file",
    "copilot_applyPatch": "edit_file",
    "copilot_createFile": "write_file",
    "run_in_terminal": "bash",
    "copilot_runInTerminal": "bash",
    "copilot_findTextInFiles": "grep",
    "copilot_findFiles": "glob",
    "copilot_searchCodebase": "search",
    "copilot_fetchWebPage": "web_fetch",
    "vscode_fetchWebPage_internal": "web_fetch",
    "copilot_manageTodoList": "todo",
    "manage_todo_list": "todo",
}


def state_db_path(data_dir: Path) -> Path:
    return data_dir / "User" / "globalStorage" / "state.vscdb"


@contextmanager
def open_state_db(db_path: Path) -> Iterator[Optional[sqlite3.Connection]]:
    """Read-only connection to a state.vscdb, copying it aside if VS Code holds a lock."""
    if not db_path.exists():
        yield None
        return

    conn = None
    temp_path = None
    try:
        try:
            conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
            conn.execute("SELECT 1")  # Test connection
        except sqlite3.Error:
            if conn is not None:
                conn.close()
            conn = None
            try:
                fd, temp_name = tempfile.mkstemp(suffix=".vscdb")
                os.close(fd)
                temp_path = Path(temp_name)
                shutil.copy(db_path, temp_path)
                conn = sqlite3.connect(str(temp_path))
            except (OSError, sqlite3.Error):
                conn = None
        yield conn
    finally:
        if conn is not None:
            conn.close()
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)


def read_session_index(data_dir: Path) -> list[dict]:
    """Entries of the chat session index stored in state.vscdb."""
    with open_state_db(state_db_path(data_dir)) as conn:
        if conn is None:
            return []
        try:
            row = conn.execute("SELECT value FROM ItemTable WHERE key = ?", (INDEX_KEY,)).fetchone()
        except sqlite3.Error:
            return []
    if not row:
        return []
    try:
        data = json.loads(row[0])
    except (json.JSONDecodeError, TypeError):
        return []
    entries = data.get("entries") if isinstance(data, dict) else None
    if not isinstance(entries, dict):
        return []

    result = []
    for key, entry in entries.items():
        if not isinstance(entry, dict):
            continue
        entry = dict(entry)
        entry.setdefault("sessionId", key)
        result.append(entry)
    return result


def workspace_folder(ws_dir: Path) -> Optional[str]:
    """Folder opened in a workspaceStorage entry, from its workspace.json."""
    workspace_json = ws_dir / "workspace.json"
    try:
        with open(workspace_json, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    folder = data.get("folder") if isinstance(data, dict) else None
    if not isinstance(folder, str) or not folder:
        return None
    # folder is a URI like "file:///Users/erik/project"
    if folder.startswith("file://"):
        return unquote(urlparse(folder).path)
    return folder


def session_files(data_dir: Path) -> dict[str, Path]:
    """Map every session id found on disk to its JSON file."""
    files: dict[str, Path] = {}
    user_dir = data_dir / "User"
    dirs = [user_dir / "globalStorage" / "emptyWindowChatSessions"]
    ws_storage = user_dir / "workspaceStorage"
    try:
        dirs.extend(d / "chatSessions" for d in sorted(ws_storage.iterdir()) if d.is_dir())
    except OSError:
        pass
    for directory in dirs:
        try:
            for path in directory.glob("*.json"):
                files.setdefault(path.stem, path)
        except OSError:
            continue
    return files


def find_session_file(data_dir: Path, session_id: str) -> Optional[Path]:
    user_dir = data_dir / "User"
    candidates = [user_dir / "globalStorage" / "emptyWindowChatSessions" / f"{session_id}.json"]
    ws_storage = user_dir / "workspaceStorage"
    try:
        candidates.extend(d / "chatSessions" / f"{session_id}.json" for d in sorted(ws_storage.iterdir()) if d.is_dir())
    except OSError:
        pass
    for path in candidates:
        if path.is_file():
            return path
    return None


def working_directory_of(session_file: Optional[Path]) -> str:
    """Workspace folder for a session stored under workspaceStorage, else ""."""
    if session_file is None or session_file.parent.name != "chatSessions":
        return ""
    return workspace_folder(session_file.parent.parent) or ""


def read_session_content(path: Path) -> LoadResult:
    """Load and redact one session JSON document."""
    if is_oversized(path):
        return LoadResult.skipped(OVERSIZE, path.stem)
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            data = json.load(f)
    except OSError:
        return LoadResult.skipped(NOT_FOUND, path.stem)
    except json.JSONDecodeError:
        return LoadResult.skipped(CORRUPT, path.stem)
    if not isinstance(data, dict):
        return LoadResult.skipped(CORRUPT, path.stem)
    return LoadResult(redact(data, keys=("text",)), session_id=path.stem)


def timing_of(entry: dict) -> dict:
    timing = entry.get("timing")
    return timing if isinstance(timing, dict) else {}


def is_epoch_ms(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def derive_status(entry: dict, now: Optional[float] = None) -> str:
    """Status from index timing: an end time or no start time means completed."""
    timing = timing_of(entry)
    if timing.get("endTime"):
        return COMPLETED
    start = timing.get("startTime")
    if not is_epoch_ms(start):
        return COMPLETED
    last = entry.get("lastMessageDate")
    last_activity = last if is_epoch_ms(last) else start
    age = (now if now is not None else now_ms()) - last_activity
    return RUNNING if age < config.RECENT_MARKER_MS else COMPLETED


def tool_name_of(part: dict) -> tuple[str, str]:
    """(canonical name, raw name) for a serialized tool invocation."""
    tool_id = part.get("toolId")
    if isinstance(tool_id, str) and tool_id:
        return normalize_tool_name(tool_id, VSCODE_TOOL_ALIASES), tool_id
    invocation = part.get("invocationMessage")
    if isinstance(invocation, dict):
        invocation = invocation.get("value")
    name = part.get("originMessage") or invocation or "unknown"
    return str(name), str(name)


def user_text_of(request: dict) -> str:
    message = request.get("message")
    if not isinstance(message, dict):
        return ""
    text = message.get("text")
    if isinstance(text, str) and text:
        return text
    parts = message.get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str))


def requests_to_events(requests: list) -> list[SessionEvent]:
    """Convert the session's request list into a canonical timeline."""
    events: list[SessionEvent] = []

    for req in requests:
        if not isinstance(req, dict):
            continue
        ts = normalize_iso(req.get("timestamp"))
        request_id = str(req.get("requestId") or "")

        user_text = user_text_of(req)
        if user_text:
            events.append(SessionEvent(USER_MESSAGE, request_id, ts, {"content": user_text}))

        events.append(SessionEvent(TURN_START, f"turn-{request_id}", ts, {}))

        response = req.get("response")
        response = response if isinstance(response, list) else []
        text_parts = []
        for part in response:
            if not isinstance(part, dict):
                continue
            kind = part.get("kind")
            if kind == "toolInvocationSerialized":
                tool, raw_name = tool_name_of(part)
                call_id = str(part.get("toolCallId") or "")
                events.append(SessionEvent(TOOL_START, call_id, ts, {"tool": tool, "toolName": raw_name}))
                events.append(SessionEvent(TOOL_COMPLETE, call_id, ts, {"tool": tool, "toolName": raw_name, "success": True}))
            elif not kind and isinstance(part.get("value"), str):
                text_parts.append(part["value"])

        result = req.get("result")
        if isinstance(result, dict) and isinstance(result.get("value"), str) and result["value"]:
            text_parts.append(result["value"])

        full_response = "\n".join(text_parts).strip()
        if full_response:
            model_state = req.get("modelState")
            completed_at = model_state.get("completedAt") if isinstance(model_state, dict) else None
            resp_ts = normalize_iso(completed_at) if completed_at else ts
            response_id = str(req.get("responseId") or f"resp-{request_id}")
            events.append(SessionEvent(ASSISTANT_MESSAGE, response_id, resp_ts, {"content": truncate_text(full_response)}))

    return events


def model_of(content: dict) -> Optional[str]:
    """Model of the first request (provider prefix dropped), else the selected model."""
    requests = content.get("requests")
    if isinstance(requests, list) and requests and isinstance(requests[0], dict) and requests[0].get("modelId"):
        return str(requests[0]["modelId"]).split("/")[-1]
    selected = content.get("selectedModel")
    if isinstance(selected, dict):
        metadata = selected.get("metadata")
        if isinstance(metadata, dict) and isinstance(metadata.get("name"), str):
            return metadata["name"]
    return None


@register_provider
class VSCodeProvider(SessionProvider):
    """Provider for VS Code Copilot Chat sessions."""

    name = SOURCE_VSCODE
    display_name = "VS Code"
    icon = "◆"
    color = "blue"

    def __init__(self, data_dirs: Optional[list[Path]] = None):
        self.data_dirs = data_dirs

    def get_data_dirs(self) -> list[Path]:
        if self.data_dirs is not None:
            return [d for d in self.data_dirs if d.exists()]
        return config.vscode_data_dirs()

    def get_sessions_dir(self) -> Path:
        dirs = self.get_data_dirs()
        return dirs[0] if dirs else Path.home() / ".config" / "Code"

    def is_available(self) -> bool:
        return any(state_db_path(d).exists() for d in self.get_data_dirs())

    def scan(self, now: Optional[float] = None) -> list[LoadResult]:
        results = []
        seen: set[str] = set()
        for data_dir in self.get_data_dirs():
            files = session_files(data_dir)
            for entry in read_session_index(data_dir):
                session_id = str(entry["sessionId"])
                if session_id in seen:
                    continue
                seen.add(session_id)
                if entry.get("isEmpty"):
                    results.append(LoadResult.skipped(EMPTY, session_id))
                    continue
                try:
                    meta = self._meta(entry, files.get(session_id), now)
                except (AttributeError, TypeError, ValueError) as e:
                    logger.debug("Malformed index entry %s: %s", session_id, e)
                    results.append(LoadResult.skipped(CORRUPT, session_id))
                    continue
                results.append(LoadResult(meta, session_id=session_id))
        return results

    def _meta(self, entry: dict, session_file: Optional[Path], now: Optional[float]) -> SessionMeta:
        timing = timing_of(entry)
        last = entry.get("lastMessageDate")
        title = entry.get("title")
        return SessionMeta(
            id=str(entry["sessionId"]),
            source=self.name,
            working_directory=working_directory_of(session_file),
            created_at=normalize_iso(timing.get("startTime") or last),
            updated_at=normalize_iso(timing.get("endTime") or last),
            status=derive_status(entry, now),
            title=title if isinstance(title, str) and title else None,
        )

    def is_member(self, session_id: str) -> bool:
        return any(
            str(entry.get("sessionId")) == session_id
            for data_dir in self.get_data_dirs()
            for entry in read_session_index(data_dir)
        )

    def load(self, session_id: str, now: Optional[float] = None) -> LoadResult:
        reason = NOT_FOUND
        for data_dir in self.get_data_dirs():
            path = find_session_file(data_dir, session_id)
            if path is None:
                continue
            result = read_session_content(path)
            if not result.ok:
                reason = result.reason
                continue
            try:
                detail = self._detail(data_dir, path, session_id, result.value, now)
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug("Malformed session %s: %s", path, e)
                reason = CORRUPT
                continue
            return LoadResult(detail, session_id=session_id)
        return LoadResult.skipped(reason, session_id)

    def _detail(self, data_dir: Path, path: Path, session_id: str, content: dict, now: Optional[float]) -> SessionDetail:
        requests = content.get("requests")
        events = requests_to_events(requests if isinstance(requests, list) else [])
        event_counts, duration = summarize_events(events)

        index_entry = next(
            (e for e in read_session_index(data_dir) if str(e.get("sessionId")) == session_id),
            None,
        )
        status = derive_status(index_entry, now) if index_entry else COMPLETED
        explicit_title = content.get("customTitle") or (index_entry or {}).get("title")
        first_message = next((e.content for e in events if e.type == USER_MESSAGE), None)

        timing = timing_of(content)
        created = content.get("creationDate") or timing.get("startTime")
        updated = content.get("lastMessageDate")
        if parse_timestamp_ms(updated) is None:
            updated = max((ms for ms in (e.timestamp_ms for e in events) if ms is not None), default=None)

        return SessionDetail(
            id=str(content.get("sessionId") or session_id),
            source=self.name,
            working_directory=working_directory_of(path),
            created_at=normalize_iso(created),
            updated_at=normalize_iso(updated),
            status=status,
            title=derive_title(explicit_title, first_message),
            events=events,
            model=model_of(content),
            event_counts=event_counts,
            duration=duration,
        )

    def get_resume_command(self, session: SessionMeta) -> str:
        # VS Code has no CLI resume command
        return f"# Open VS Code chat history and restore session {session.id}"
