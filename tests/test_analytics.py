"""Tests for aggregate analytics."""

import pytest

from session_lens.analytics import compute_analytics, hour_bucket, mcp_server_of, models_of
from session_lens.models import (
    TOOL_COMPLETE,
    TOOL_START,
    TURN_START,
    USER_MESSAGE,
    SessionDetail,
    SessionEvent,
    SessionMeta,
)


def event(event_type, **data):
    return SessionEvent(event_type, "", "", data)


def build(details):
    """(sessions, loader) for a list of SessionDetail objects."""
    by_key = {d.qualified_id: d for d in details}
    sessions = [
        SessionMeta(
            id=d.id, source=d.source, working_directory=d.working_directory, repository_root=d.repository_root,
            branch=d.branch, created_at=d.created_at,
        )
        for d in details
    ]
    return sessions, lambda meta: by_key.get(meta.qualified_id)


CLI_DETAIL = SessionDetail(
    id="s1",
    source="cli",
    working_directory="/home/dev/webapp",
    repository_root="/home/dev/webapp",
    branch="main",
    created_at="2024-03-01T09:15:00Z",
    duration=120_000,
    events=[
        event(USER_MESSAGE, content="hi"),
        event("session.info", infoType="mcp", message="Configured MCP servers: github, playwright"),
        event(TURN_START),
        event(TOOL_START, tool="bash"),
        event(TOOL_COMPLETE, tool="bash", success=True),
        event(TOOL_START, tool="github.create_issue"),
        event(TOOL_COMPLETE, tool="github.create_issue", success=False),
        event(TURN_START),
        event("session.model_change", newModel="gpt-5"),
        event("session.error", errorType="rate_limit"),
    ],
)

CLAUDE_DETAIL = SessionDetail(
    id="c1",
    source="claude-code",
    working_directory="/home/dev/api",
    branch="feature/x",
    created_at="2024-03-01T14:40:00Z",
    duration=60_000,
    model="claude-sonnet-4",
    events=[
        event(USER_MESSAGE, content="hello"),
        event(TOOL_START, tool="bash"),
        event(TOOL_COMPLETE, tool="bash", success=True),
        event(TOOL_START, tool="github.get_issue"),
    ],
)

VSCODE_DETAIL = SessionDetail(
    id="v1",
    source="vscode",
    created_at="2024-03-02T14:05:00Z",
    events=[event("session.info", infoType="model", message="Model changed to: gpt-4o.")],
)


class TestHelpers:
    """Tests for the per-event extractors."""

    def test_hour_bucket_is_utc(self):
        assert hour_bucket("2024-03-01T23:30:00+02:00") == "21:00"
        assert hour_bucket("") is None

    def test_mcp_server_of(self):
        assert mcp_server_of("github.create_issue") == "github"
        assert mcp_server_of("bash") is None
        assert mcp_server_of(".hidden") is None

    def test_models_from_info_message(self):
        assert models_of(VSCODE_DETAIL) == ["gpt-4o"]

    def test_model_field_fallback(self):
        assert models_of(CLAUDE_DETAIL) == ["claude-sonnet-4"]


class TestComputeAnalytics:
    """Tests for compute_analytics."""

    @pytest.fixture
    def analytics(self):
        return compute_analytics(*build([CLI_DETAIL, CLAUDE_DETAIL, VSCODE_DETAIL]))

    def test_empty(self):
        result = compute_analytics([], lambda meta: None)
        assert result.total_sessions == 0
        assert result.avg_duration == 0
        assert result.to_dict()["toolUsage"] == {}

    def test_counts_per_day_and_hour(self, analytics):
        assert analytics.total_sessions == 3
        assert analytics.sessions_per_day == {"2024-03-01": 2, "2024-03-02": 1}
        assert analytics.hour_of_day == {"09:00": 1, "14:00": 2}

    def test_durations_ignore_zero(self, analytics):
        assert analytics.total_duration == 180_000
        assert analytics.avg_duration == 90_000
        assert analytics.min_duration == 60_000
        assert analytics.max_duration == 120_000

    def test_tool_usage_and_success(self, analytics):
        assert analytics.tool_usage == {"bash": 2, "github.create_issue": 1, "github.get_issue": 1}
        assert analytics.tool_success_rate["bash"] == {"success": 2, "failure": 0}
        assert analytics.tool_success_rate["github.create_issue"] == {"success": 0, "failure": 1}

    def test_directories(self, analytics):
        assert analytics.top_directories == {"/home/dev/webapp": 1, "/home/dev/api": 1, "unknown": 1}

    def test_branch_and_repo_time(self, analytics):
        assert analytics.branch_time == {"main": 120_000, "feature/x": 60_000}
        assert analytics.repo_time == {"/home/dev/webapp": 120_000, "/home/dev/api": 60_000}

    def test_models(self, analytics):
        assert analytics.model_usage == {"gpt-5": 1, "claude-sonnet-4": 1, "gpt-4o": 1}

    def test_mcp_servers_counted_once_per_session(self, analytics):
        assert analytics.mcp_servers == {"github": 2, "playwright": 1}

    def test_turns_and_errors(self, analytics):
        assert analytics.turns_per_session == [2]
        assert analytics.error_types == {"rate_limit": 1}

    def test_unloadable_sessions_still_listed(self):
        sessions, _ = build([CLI_DETAIL, CLAUDE_DETAIL])
        result = compute_analytics(sessions, lambda meta: None)
        assert result.total_sessions == 2
        assert result.sessions_per_day == {"2024-03-01": 2}
        assert result.tool_usage == {}

    def test_to_dict_keys(self, analytics):
        data = analytics.to_dict()
        assert data["totalSessions"] == 3
        assert data["mcpServers"]["github"] == 2
        assert "toolSuccessRate" in data and "hourOfDay" in data
