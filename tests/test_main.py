"""Tests for the command-line entry point."""

import json

import pytest

from conftest import make_cli_session
from session_lens.main import main


@pytest.fixture
def env(monkeypatch, tmp_path, cli_root):
    """Point every provider at temporary directories; only the CLI root has data."""
    monkeypatch.setenv("SESSION_LENS_COPILOT_DIR", str(cli_root))
    monkeypatch.setenv("SESSION_LENS_CLAUDE_DIR", str(tmp_path / "no-claude"))
    monkeypatch.setenv("SESSION_LENS_VSCODE_DIRS", str(tmp_path / "no-vscode"))
    make_cli_session(cli_root, "s1", [
        {"type": "user.message", "id": "e1", "timestamp": "2024-03-01T10:00:00Z",
         "data": {"content": "Add pagination to the orders endpoint"}},
        {"type": "assistant.message", "id": "e2", "timestamp": "2024-03-01T10:00:40Z",
         "data": {"content": "Pagination added with limit and offset."}},
    ])
    return cli_root


class TestMain:
    """Tests for the session-lens subcommands."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert capsys.readouterr().out.startswith("session-lens ")

    def test_list_json(self, env, capsys):
        assert main(["list", "--json"]) == 0
        [session] = json.loads(capsys.readouterr().out)
        assert session["id"] == "s1"
        assert session["source"] == "cli"
        assert session["workingDirectory"] == "/home/dev/webapp"

    def test_list_source_filter(self, env, capsys):
        assert main(["list", "--source", "vscode"]) == 0
        assert "No sessions found." in capsys.readouterr().out

    def test_list_table(self, env, capsys):
        assert main(["list"]) == 0
        out = capsys.readouterr().out
        assert "Add pagination" in out
        assert "1 sessions" in out

    def test_show(self, env, capsys):
        assert main(["show", "cli:s1"]) == 0
        out = capsys.readouterr().out
        assert "Pagination added" in out
        assert "Resume: copilot --resume s1" in out

    def test_show_json(self, env, capsys):
        assert main(["show", "s1", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["duration"] == 40_000
        assert [e["type"] for e in data["events"]] == ["user.message", "assistant.message"]

    def test_show_missing(self, env, capsys):
        assert main(["show", "nope"]) == 1
        assert "Session not found: nope" in capsys.readouterr().err

    def test_search_json(self, env, capsys):
        assert main(["search", "pagination", "--json"]) == 0
        [result] = json.loads(capsys.readouterr().out)
        assert result["entry"]["id"] == "s1"
        assert result["score"] > 0.5
        assert result["highlights"]

    def test_search_no_match(self, env, capsys):
        assert main(["search", "kubernetes"]) == 0
        assert "No matches found for: kubernetes" in capsys.readouterr().out

    def test_analytics_json(self, env, capsys):
        assert main(["analytics", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["totalSessions"] == 1
        assert data["sessionsPerDay"] == {"2024-03-01": 1}

    def test_providers_status(self, env, capsys):
        assert main(["providers", "--status"]) == 0
        out = capsys.readouterr().out
        assert "Copilot CLI" in out
        assert "1 listed, 0 skipped" in out
