"""Tests for the session store facade."""

from pathlib import Path

import pytest

from conftest import age, make_cli_session, write_jsonl
from session_lens.cache import ResultCache
from session_lens.models import NOT_FOUND, USER_MESSAGE, LoadResult, SessionDetail, SessionEvent, SessionMeta
from session_lens.providers.base import SessionProvider
from session_lens.providers.claude_code import ClaudeCodeProvider
from session_lens.providers.copilot_cli import CopilotCliProvider
from session_lens.store import SessionStore, sort_sessions


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeProvider(SessionProvider):
    """In-memory provider that counts scans and loads."""

    def __init__(self, name, sessions=(), messages=None):
        self.name = name
        self.sessions = {s.id: s for s in sessions}
        self.messages = messages or {}
        self.scans = 0
        self.loads = []

    def get_sessions_dir(self) -> Path:
        return Path("/nonexistent")

    def scan(self):
        self.scans += 1
        return [LoadResult(meta, session_id=meta.id) for meta in self.sessions.values()]

    def is_member(self, session_id):
        return session_id in self.sessions

    def load(self, session_id):
        self.loads.append(session_id)
        meta = self.sessions.get(session_id)
        if meta is None:
            return LoadResult.skipped(NOT_FOUND, session_id)
        events = [
            SessionEvent(USER_MESSAGE, f"{session_id}-{i}", meta.created_at, {"content": text})
            for i, text in enumerate(self.messages.get(session_id, ["hello"]))
        ]
        detail = SessionDetail(id=meta.id, source=self.name, title=meta.title, created_at=meta.created_at, events=events)
        return LoadResult(detail, session_id=session_id)

    def get_resume_command(self, session):
        return f"{self.name} resume {session.id}"


def meta(session_id, source, created_at, title=None):
    return SessionMeta(id=session_id, source=source, created_at=created_at, title=title)


class TestSortSessions:
    """Tests for the merged list order."""

    def test_newest_first(self):
        sessions = [
            meta("a", "cli", "2024-03-01T10:00:00Z"),
            meta("b", "vscode", "2024-03-03T10:00:00Z"),
            meta("c", "claude-code", "2024-03-02T10:00:00Z"),
        ]
        assert [s.id for s in sort_sessions(sessions)] == ["b", "c", "a"]

    def test_ties_broken_by_source_then_id(self):
        ts = "2024-03-01T10:00:00Z"
        sessions = [meta("z", "vscode", ts), meta("b", "cli", ts), meta("a", "cli", ts), meta("m", "claude-code", ts)]
        assert [(s.source, s.id) for s in sort_sessions(sessions)] == [
            ("claude-code", "m"), ("cli", "a"), ("cli", "b"), ("vscode", "z"),
        ]

    def test_missing_timestamps_last(self):
        sessions = [meta("old", "cli", ""), meta("new", "cli", "2024-03-01T10:00:00Z")]
        assert [s.id for s in sort_sessions(sessions)] == ["new", "old"]


class TestSessionStore:
    """Tests for routing, caching and refresh."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def providers(self):
        return [
            FakeProvider("vscode", [meta("shared", "vscode", "2024-03-02T10:00:00Z", "VS Code copy")],
                         messages={"shared": ["vscode side talk"]}),
            FakeProvider("claude-code", [meta("c1", "claude-code", "2024-03-03T10:00:00Z")],
                         messages={"c1": ["deploy the service"]}),
            FakeProvider("cli", [
                meta("shared", "cli", "2024-03-01T10:00:00Z", "CLI copy"),
                meta("s1", "cli", "2024-03-04T10:00:00Z"),
            ], messages={"s1": ["deploy deploy"]}),
        ]

    @pytest.fixture
    def store(self, providers, clock):
        return SessionStore(providers=providers, cache=ResultCache(default_ttl=30.0, clock=clock))

    def test_list_merges_all_providers(self, store):
        assert [s.qualified_id for s in store.list_sessions()] == [
            "cli:s1", "claude-code:c1", "vscode:shared", "cli:shared",
        ]

    def test_list_cached_within_ttl(self, store, providers, clock):
        store.list_sessions()
        clock.now += 29
        store.list_sessions()
        assert all(p.scans == 1 for p in providers)
        clock.now += 2
        store.list_sessions()
        assert all(p.scans == 2 for p in providers)

    def test_refresh_forces_rescan(self, store, providers):
        store.list_sessions()
        providers[2].sessions["s2"] = meta("s2", "cli", "2024-03-05T10:00:00Z")
        assert "s2" not in [s.id for s in store.list_sessions()]
        store.refresh()
        assert store.list_sessions()[0].id == "s2"

    def test_get_session_uses_priority(self, store):
        detail = store.get_session("shared")
        assert detail.source == "vscode"
        assert detail.title == "VS Code copy"

    def test_qualified_id_selects_provider(self, store):
        detail = store.get_session("cli:shared")
        assert detail.source == "cli"
        assert detail.title == "CLI copy"

    def test_unknown_session(self, store):
        assert store.get_session("nope") is None
        assert store.get_session("cli:nope") is None

    def test_unknown_source_prefix(self, store):
        assert store.get_session("ghost:c1") is None

    def test_get_provider(self, store):
        assert store.get_provider("cli").name == "cli"
        assert store.get_provider("cursor") is None

    def test_load_for_uses_listing_source(self, store, providers):
        [cli_copy] = [s for s in store.list_sessions() if s.qualified_id == "cli:shared"]
        assert store.load_for(cli_copy).title == "CLI copy"
        assert providers[0].loads == []

    def test_search(self, store):
        results = store.search("deploy")
        assert [r.entry.id for r in results] == ["s1", "c1"]
        assert [r.entry.id for r in store.search("deploy", source="claude-code")] == ["c1"]
        assert len(store.search("deploy", limit=1)) == 1

    def test_search_reuses_index(self, store, providers):
        store.search("deploy")
        store.search("service")
        assert providers[1].loads == ["c1"]

    def test_refresh_rebuilds_index(self, store, providers):
        store.search("deploy")
        providers[1].messages["c1"] = ["rollback the release"]
        assert store.search("rollback") == []
        store.refresh()
        assert [r.entry.id for r in store.search("rollback")] == ["c1"]

    def test_analytics_cached(self, store, providers, clock):
        first = store.get_analytics()
        assert first.total_sessions == 4
        assert store.get_analytics() is first
        clock.now += 31
        assert store.get_analytics() is not first

    def test_resume_command(self, store):
        session = store.list_sessions()[0]
        assert store.resume_command(session) == "cli resume s1"
        assert store.resume_command(meta("x", "cursor", "")) is None


class TestStoreWithRealProviders:
    """Store over on-disk Copilot CLI and Claude Code fixtures."""

    def test_same_id_in_two_sources(self, cli_root, claude_root):
        make_cli_session(cli_root, "dup", [
            {"type": "user.message", "id": "e1", "timestamp": "2024-03-01T10:00:00Z", "data": {"content": "from cli"}},
        ])
        path = write_jsonl(claude_root / "-home-dev" / "dup.jsonl", [
            {"type": "user", "uuid": "u1", "timestamp": "2024-03-02T10:00:00Z",
             "message": {"role": "user", "content": "from claude"}},
        ])
        age(path)
        store = SessionStore(providers=[ClaudeCodeProvider(root=claude_root), CopilotCliProvider(root=cli_root)])

        assert [s.qualified_id for s in store.list_sessions()] == ["claude-code:dup", "cli:dup"]
        assert store.get_session("dup").events[0].content == "from claude"
        assert store.get_session("cli:dup").events[0].content == "from cli"
