#!/usr/bin/env python3
"""Session Lens - one view over Copilot CLI, VS Code and Claude Code sessions.

Entry point for the CLI application.
"""

import argparse
import json
import logging
import sys

from .models import USER_MESSAGE
from .store import SessionStore
from .ui.widgets import format_duration, format_local, truncate

SOURCE_CHOICES = ["all", "cli", "vscode", "claude-code"]


def print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_browse(args, store: SessionStore) -> int:
    """Launch the TUI browser."""
    from .app import SessionLensBrowser

    app = SessionLensBrowser(store=store, source_filter=args.source)
    app.run()
    return 0


def cmd_list(args, store: SessionStore) -> int:
    """List sessions, newest first."""
    sessions = store.list_sessions()
    if args.source and args.source != "all":
        sessions = [s for s in sessions if s.source == args.source]

    if args.json:
        print_json([s.to_dict() for s in sessions])
        return 0

    if not sessions:
        print("No sessions found.")
        return 0

    print(f"{'Created':<12} {'Source':<12} {'Status':<10} {'ID':<38} Title")
    print("-" * 100)
    for s in sessions:
        title = (s.title or "").replace("\n", " ")
        print(f"{format_local(s.created_at):<12} {s.source:<12} {s.status:<10} {s.id:<38} {truncate(title, 40)}")
    print()
    print(f"{len(sessions)} sessions")
    return 0


def cmd_show(args, store: SessionStore) -> int:
    """Show one session's metadata and messages."""
    detail = store.get_session(args.session_id)
    if detail is None:
        print(f"Session not found: {args.session_id}", file=sys.stderr)
        return 1

    if args.json:
        print_json(detail.to_dict())
        return 0

    print(f"Session:   {detail.id}")
    print(f"Source:    {detail.source}")
    print(f"Status:    {detail.status}")
    print(f"Title:     {detail.title or '-'}")
    print(f"Directory: {detail.working_directory or '-'}")
    if detail.branch:
        print(f"Branch:    {detail.branch}")
    print(f"Created:   {format_local(detail.created_at, '%Y-%m-%d %H:%M:%S', 'Unknown')}")
    print(f"Updated:   {format_local(detail.updated_at, '%Y-%m-%d %H:%M:%S', 'Unknown')}")
    if detail.model:
        print(f"Model:     {detail.model}")
    print(f"Active:    {format_duration(detail.duration)}")
    print()
    print("Events:")
    for event_type, count in sorted(detail.event_counts.items(), key=lambda kv: -kv[1]):
        print(f"  {event_type:<28} {count}")
    print()

    for event in detail.messages():
        role = "User" if event.type == USER_MESSAGE else "Assistant"
        when = format_local(event.timestamp, "%H:%M:%S", "--:--:--")
        print(f"── {role} {when} " + "─" * 30)
        print(event.content)
        print()

    resume = store.resume_command(detail)
    if resume:
        print(f"Resume: {resume}")
    return 0


def cmd_search(args, store: SessionStore) -> int:
    """Search message text across sessions."""
    results = store.search(args.query, limit=args.limit, source=args.source or "all")

    if args.json:
        print_json([r.to_dict() for r in results])
        return 0

    if not results:
        print(f"No matches found for: {args.query}")
        return 0

    print(f"Found {len(results)} sessions:\n")
    for result in results:
        entry = result.entry
        provider = store.get_provider(entry.source)
        icon = provider.icon if provider else "?"
        print(f"{icon} {truncate(entry.title.replace(chr(10), ' '), 70)}")
        print(f"   ID: {entry.source}:{entry.id}")
        print(f"   Score: {result.score:.3f}")
        for snippet in result.highlights:
            print(f"   … {snippet.replace(chr(10), ' ')} …")
        print()
    return 0


def cmd_analytics(args, store: SessionStore) -> int:
    """Print aggregate statistics."""
    analytics = store.get_analytics()
    if args.json:
        print_json(analytics.to_dict())
        return 0

    print("Session Analytics")
    print("=" * 60)
    print()
    print(f"Sessions: {analytics.total_sessions}")
    print(f"Active time: total {format_duration(analytics.total_duration)}, "
          f"avg {format_duration(analytics.avg_duration)}, "
          f"max {format_duration(analytics.max_duration)}")
    if analytics.turns_per_session:
        avg_turns = sum(analytics.turns_per_session) / len(analytics.turns_per_session)
        print(f"Turns per session: {avg_turns:.1f} avg")
    print()

    sections = [
        ("Top directories", analytics.top_directories),
        ("Tool usage", analytics.tool_usage),
        ("Models", analytics.model_usage),
        ("MCP servers", analytics.mcp_servers),
        ("Errors", analytics.error_types),
    ]
    for heading, counts in sections:
        if not counts:
            continue
        print(f"{heading}:")
        for name, count in sorted(counts.items(), key=lambda kv: -kv[1])[:10]:
            print(f"  {truncate(str(name), 40):<40} {count}")
        print()

    if analytics.repo_time:
        print("Active time per repository:")
        for repo, ms in sorted(analytics.repo_time.items(), key=lambda kv: -kv[1])[:10]:
            print(f"  {truncate(repo, 40):<40} {format_duration(ms)}")
        print()
    return 0


def cmd_providers(args, store: SessionStore) -> int:
    """List available providers."""
    providers = store.providers

    if args.status:
        print("Provider Status:")
        print("-" * 60)
        for p in providers:
            available = "✓" if p.is_available() else "✗"
            status = "available" if p.is_available() else "not found"

            print(f"{available} {p.icon} {p.display_name:<15} ({p.name})")
            print(f"    Path: {p.get_sessions_dir()}")
            print(f"    Status: {status}")

            if p.is_available():
                results = p.scan()
                listed = sum(1 for r in results if r.ok)
                print(f"    Sessions: {listed} listed, {len(results) - listed} skipped")
            print()
    else:
        print("Available providers:")
        for p in providers:
            status = "✓" if p.is_available() else "✗"
            print(f"  {status} {p.icon} {p.display_name} ({p.name})")
    return 0


COMMANDS = {
    "browse": cmd_browse,
    "list": cmd_list,
    "show": cmd_show,
    "search": cmd_search,
    "analytics": cmd_analytics,
    "providers": cmd_providers,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Browse, search and summarize AI coding assistant sessions",
        prog="session-lens",
    )
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging to stderr")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    browse_parser = subparsers.add_parser("browse", help="Launch TUI browser (default)")
    browse_parser.add_argument("--source", "-s", choices=SOURCE_CHOICES[1:], help="Filter to one source")

    list_parser = subparsers.add_parser("list", help="List sessions")
    list_parser.add_argument("--source", "-s", choices=SOURCE_CHOICES, help="Filter to one source")
    list_parser.add_argument("--json", action="store_true", help="Print JSON")

    show_parser = subparsers.add_parser("show", help="Show one session")
    show_parser.add_argument("session_id", help="Session id, optionally prefixed with '<source>:'")
    show_parser.add_argument("--json", action="store_true", help="Print JSON")

    search_parser = subparsers.add_parser("search", help="Search sessions")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--source", "-s", choices=SOURCE_CHOICES, help="Filter to one source")
    search_parser.add_argument("--limit", "-l", type=int, default=20, help="Max sessions to show")
    search_parser.add_argument("--json", action="store_true", help="Print JSON")

    analytics_parser = subparsers.add_parser("analytics", help="Aggregate statistics")
    analytics_parser.add_argument("--json", action="store_true", help="Print JSON")

    providers_parser = subparsers.add_parser("providers", help="List available providers")
    providers_parser.add_argument("--status", action="store_true", help="Show detailed status")

    return parser


def main(argv=None) -> int:
    """Main entry point for the session-lens CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"session-lens {__version__}")
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = SessionStore()
    if args.command is None:
        args = argparse.Namespace(source=None)
        return cmd_browse(args, store)
    return COMMANDS[args.command](args, store)


if __name__ == "__main__":
    sys.exit(main())
