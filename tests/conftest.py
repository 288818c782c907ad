"""Shared fixtures: builders for on-disk session layouts."""

import json
import os
import sqlite3
from pathlib import Path

import pytest

# 2024-01-01T00:00:00Z, far enough back that no file counts as recently modified
OLD_MTIME = 1704067200


def write_jsonl(path: Path, records: list, extra_lines: list[str] = ()) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(r) for r in records] + list(extra_lines)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def age(path: Path, mtime: float = OLD_MTIME):
    os.utime(path, (mtime, mtime))


def make_cli_session(
    root: Path,
    session_id: str,
    events: list,
    workspace: str | None = None,
    plan: str | None = None,
    snapshots: bool = False,
    session_db: bool = False,
    fresh: bool = False,
) -> Path:
    """Create a Copilot CLI session-state directory."""
    session_dir = root / session_id
    session_dir.mkdir(parents=True)
    if workspace is None:
        workspace = (
            f"id: {session_id}\n"
            "cwd: /home/dev/webapp\n"
            "git_root: /home/dev/webapp\n"
            "branch: main\n"
            "created_at: '2024-03-01T10:00:00.000Z'\n"
            "updated_at: '2024-03-01T11:00:00.000Z'\n"
        )
    (session_dir / "workspace.yaml").write_text(workspace, encoding="utf-8")
    if events is not None:
        write_jsonl(session_dir / "events.jsonl", events)
    if plan is not None:
        (session_dir / "plan.md").write_text(plan, encoding="utf-8")
    if snapshots:
        (session_dir / "rewind-snapshots").mkdir()
        (session_dir / "rewind-snapshots" / "index.json").write_text("[]")
    if session_db:
        (session_dir / "session.db").write_bytes(b"")
    if not fresh:
        for path in session_dir.rglob("*"):
            if path.is_file():
                age(path)
    return session_dir


def make_vscode_data_dir(root: Path, index_entries: dict) -> Path:
    """Create a VS Code user data dir whose state.vscdb holds ``index_entries``."""
    global_storage = root / "User" / "globalStorage"
    global_storage.mkdir(parents=True)
    conn = sqlite3.connect(str(global_storage / "state.vscdb"))
    try:
        conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
        conn.execute(
            "INSERT INTO ItemTable (key, value) VALUES (?, ?)",
            ("chat.ChatSessionStore.index", json.dumps({"version": 1, "entries": index_entries})),
        )
        conn.commit()
    finally:
        conn.close()
    return root


def write_vscode_session(data_dir: Path, session: dict, workspace_hash: str | None = None, folder: str | None = None) -> Path:
    """Write a chat session JSON, in a workspace when ``workspace_hash`` is given."""
    if workspace_hash is None:
        directory = data_dir / "User" / "globalStorage" / "emptyWindowChatSessions"
    else:
        ws_dir = data_dir / "User" / "workspaceStorage" / workspace_hash
        directory = ws_dir / "chatSessions"
        if folder is not None:
            ws_dir.mkdir(parents=True, exist_ok=True)
            (ws_dir / "workspace.json").write_text(json.dumps({"folder": folder}))
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{session['sessionId']}.json"
    path.write_text(json.dumps(session), encoding="utf-8")
    return path


@pytest.fixture
def cli_root(tmp_path):
    root = tmp_path / "session-state"
    root.mkdir()
    return root


@pytest.fixture
def claude_root(tmp_path):
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def vscode_root(tmp_path):
    return tmp_path / "Code"
