"""Aggregate statistics over the canonical session model."""

import logging
import re
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from .models import TOOL_COMPLETE, TOOL_START, TURN_START, Analytics, SessionDetail, SessionMeta
from .timeutil import parse_timestamp_ms

logger = logging.getLogger(__name__)

MCP_SERVERS_RE = re.compile(r"Configured MCP servers?:\s*(.+)", re.IGNORECASE)
MODEL_CHANGED_RE = re.compile(r"Model changed to:\s*([^\s.]+(?:[-.][^\s.]+)*)", re.IGNORECASE)

UNKNOWN = "unknown"


def hour_bucket(created_at: str) -> Optional[str]:
    """``"HH:00"`` (UTC) for a creation timestamp."""
    ms = parse_timestamp_ms(created_at)
    if ms is None:
        return None
    return f"{datetime.fromtimestamp(ms / 1000, tz=timezone.utc).hour:02d}:00"


def tool_of(data: dict) -> str:
    return data.get("tool") or data.get("toolName") or UNKNOWN


def mcp_server_of(tool: str) -> Optional[str]:
    """Server part of a ``server.tool`` name; canonical tool names have no dot."""
    server, sep, name = tool.partition(".")
    return server if sep and server and name else None


def models_of(detail: SessionDetail) -> list[str]:
    models = []
    for event in detail.events:
        if event.type == "session.model_change" and event.data.get("newModel"):
            models.append(event.data["newModel"])
        elif event.type == "session.info" and event.data.get("infoType") == "model":
            match = MODEL_CHANGED_RE.search(event.data.get("message") or "")
            if match:
                models.append(match.group(1))
    if not models and detail.model:
        models.append(detail.model)
    return models


def mcp_servers_of(detail: SessionDetail) -> set[str]:
    servers = set()
    for event in detail.events:
        if event.type == "session.info" and event.data.get("infoType") == "mcp":
            match = MCP_SERVERS_RE.search(event.data.get("message") or "")
            if match:
                servers.update(s.strip() for s in match.group(1).split(",") if s.strip())
        elif event.type == TOOL_START:
            server = mcp_server_of(tool_of(event.data))
            if server:
                servers.add(server)
    return servers


def compute_analytics(
    sessions: Iterable[SessionMeta],
    load_detail: Callable[[SessionMeta], Optional[SessionDetail]],
) -> Analytics:
    """Aggregate every listed session; details are loaded through ``load_detail``."""
    sessions = list(sessions)
    sessions_per_day: Counter = Counter()
    hour_of_day: Counter = Counter()
    top_directories: Counter = Counter()
    tool_usage: Counter = Counter()
    model_usage: Counter = Counter()
    mcp_servers: Counter = Counter()
    error_types: Counter = Counter()
    branch_time: dict[str, float] = defaultdict(float)
    repo_time: dict[str, float] = defaultdict(float)
    tool_success: dict[str, dict[str, int]] = {}
    turns_per_session: list[int] = []
    durations: list[float] = []

    for meta in sessions:
        day = meta.created_at[:10]
        if day:
            sessions_per_day[day] += 1
        hour = hour_bucket(meta.created_at)
        if hour:
            hour_of_day[hour] += 1
        top_directories[meta.working_directory or UNKNOWN] += 1

        detail = load_detail(meta)
        if detail is None:
            logger.debug("No detail for %s, counted in listing totals only", meta.qualified_id)
            continue

        turns = 0
        for event in detail.events:
            if event.type == TOOL_START:
                tool_usage[tool_of(event.data)] += 1
            elif event.type == TOOL_COMPLETE:
                stats = tool_success.setdefault(tool_of(event.data), {"success": 0, "failure": 0})
                stats["success" if event.data.get("success") else "failure"] += 1
            elif event.type == TURN_START:
                turns += 1
            elif event.type == "session.error":
                error_types[event.data.get("errorType") or UNKNOWN] += 1
        if turns:
            turns_per_session.append(turns)

        for model in models_of(detail):
            model_usage[model] += 1
        for server in mcp_servers_of(detail):
            mcp_servers[server] += 1

        if detail.duration > 0:
            durations.append(detail.duration)
            branch_time[meta.branch or UNKNOWN] += detail.duration
            repo_time[meta.repository_root or meta.working_directory or UNKNOWN] += detail.duration

    total = sum(durations)
    return Analytics(
        total_sessions=len(sessions),
        sessions_per_day=dict(sessions_per_day),
        avg_duration=total / len(durations) if durations else 0,
        min_duration=min(durations) if durations else 0,
        max_duration=max(durations) if durations else 0,
        total_duration=total,
        tool_usage=dict(tool_usage),
        top_directories=dict(top_directories),
        branch_time=dict(branch_time),
        repo_time=dict(repo_time),
        model_usage=dict(model_usage),
        mcp_servers=dict(mcp_servers),
        tool_success_rate=tool_success,
        turns_per_session=turns_per_session,
        hour_of_day=dict(hour_of_day),
        error_types=dict(error_types),
    )
