"""UI widgets for the session-lens TUI."""

import re
from datetime import datetime
from pathlib import PurePath
from typing import Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import ListItem, Static

from ..models import (
    ASSISTANT_MESSAGE,
    ERROR,
    RUNNING,
    TOOL_COMPLETE,
    TOOL_START,
    USER_MESSAGE,
    SessionDetail,
    SessionEvent,
    SessionMeta,
)
from ..providers.base import SessionProvider
from ..search import tokenize
from ..timeutil import parse_timestamp_ms

STATUS_STYLES = {RUNNING: ("●", "green bold"), ERROR: ("✗", "red bold")}


def truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def format_local(timestamp: str, fmt: str = "%m-%d %H:%M", missing: str = "??-?? ??:??") -> str:
    """Render an ISO timestamp in local time."""
    ms = parse_timestamp_ms(timestamp)
    if ms is None:
        return missing
    return datetime.fromtimestamp(ms / 1000).strftime(fmt)


def format_duration(ms: float) -> str:
    minutes, seconds = divmod(int(ms // 1000), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m {seconds:02d}s"


def project_name(session: SessionMeta) -> str:
    path = session.repository_root or session.working_directory
    return PurePath(path).name if path else "-"


def highlight_tokens(snippet: str, query: str) -> Text:
    """Snippet with every query token emphasized."""
    text = Text(snippet)
    for token in tokenize(query):
        text.highlight_regex(re.compile(re.escape(token), re.IGNORECASE), style="bold yellow")
    return text


class SessionItem(ListItem):
    """List item for one session."""

    def __init__(self, session: SessionMeta, provider: Optional[SessionProvider] = None):
        super().__init__()
        self.session = session
        self.provider = provider
        self._static: Optional[Static] = None

    def compose(self) -> ComposeResult:
        self._static = Static(self._build_text(100))
        yield self._static

    def on_resize(self, event) -> None:
        """Update text when resized."""
        if self._static:
            self._static.update(self._build_text(self.size.width))

    def _build_text(self, width: int) -> Text:
        """Build the display text based on available width."""
        icon = self.provider.icon if self.provider else "?"
        marker, marker_style = STATUS_STYLES.get(self.session.status, (" ", "dim"))
        description = (self.session.title or self.session.id).replace("\n", " ").strip()

        text = Text()
        text.append(format_local(self.session.created_at), style="cyan")
        text.append(" │ ", style="dim")
        text.append(f"{icon} ", style="bold")
        text.append(marker, style=marker_style)
        text.append(" ")
        text.append(f"{project_name(self.session)[:12]:<12}", style="green")
        text.append(" │ ", style="dim")

        prefix_width = 38  # date(11) + sep(3) + icon(2) + marker(2) + project(12) + sep(3) + padding(5)
        desc_width = max(20, width - prefix_width)
        text.append(truncate(description, desc_width), style="white")
        return text


class SessionDetailPanel(ScrollableContainer, can_focus=True):
    """Scrollable panel showing session details."""

    def __init__(self, id: str = None):
        super().__init__(id=id)
        self.session: Optional[SessionMeta] = None
        self._transcript: list[Text] = []

    def update(self, text: Text) -> None:
        """Update the content (replaces all content)."""
        for child in list(self.children):
            child.remove()
        self._transcript = []
        self.mount(Static(text, markup=False))

    def write(self, text: Text) -> None:
        """Append a text block."""
        self.mount(Static(text, markup=False))

    def get_transcript_text(self) -> str:
        """Plain text of the displayed timeline, for the clipboard."""
        return "\n".join(t.plain for t in self._transcript)

    def show_session(
        self,
        session: SessionMeta,
        detail: Optional[SessionDetail],
        provider: Optional[SessionProvider],
        highlights: Optional[list[str]] = None,
        query: str = "",
    ):
        """Show metadata, event counts and (in search mode) the matched snippets."""
        self.session = session
        text = Text()

        text.append("━━━ Session Details ━━━\n", style="bold cyan")
        text.append("\n")

        text.append("Source: ", style="bold")
        icon = provider.icon if provider else "?"
        display_name = provider.display_name if provider else session.source
        text.append(f"{icon} {display_name}\n", style="cyan bold")

        marker, marker_style = STATUS_STYLES.get(session.status, ("○", "dim"))
        text.append("Status: ", style="bold")
        text.append(f"{marker} {session.status}\n", style=marker_style)

        text.append("Title: ", style="bold")
        text.append(f"{truncate(session.title or project_name(session), 50)}\n")
        text.append("Path: ", style="bold")
        text.append(f"{session.working_directory or '-'}\n", style="dim")
        if session.branch:
            text.append("Branch: ", style="bold")
            text.append(f"{session.branch}\n", style="magenta")
        text.append("Created: ", style="bold")
        text.append(f"{format_local(session.created_at, '%Y-%m-%d %H:%M:%S', 'Unknown')}\n")
        text.append("Updated: ", style="bold")
        text.append(f"{format_local(session.updated_at, '%Y-%m-%d %H:%M:%S', 'Unknown')}\n")
        text.append("Session ID: ", style="bold")
        text.append(f"{session.id}\n", style="dim")

        if detail is not None:
            if detail.model:
                text.append("Model: ", style="bold")
                text.append(f"{detail.model}\n", style="yellow")
            if detail.version:
                text.append("Version: ", style="bold")
                text.append(f"{detail.version}\n", style="dim")
            text.append("Active time: ", style="bold")
            text.append(f"{format_duration(detail.duration)}\n")
            text.append("\n")
            text.append("┌─ Events ──────────────────────────────\n", style="bold green")
            for event_type, count in sorted(detail.event_counts.items(), key=lambda kv: -kv[1]):
                text.append("│ ", style="green")
                text.append(f"{event_type:<28} {count}\n")
            text.append("└───────────────────────────────────────\n", style="green")
            if detail.plan_content:
                text.append("\n")
                text.append("┌─ Plan ────────────────────────────────\n", style="bold blue")
                for line in detail.plan_content[:2000].split("\n"):
                    text.append("│ ", style="blue")
                    text.append(f"{line}\n")
                text.append("└───────────────────────────────────────\n", style="blue")
        else:
            text.append("\n")
            text.append("(session detail unavailable)\n", style="dim")

        if highlights:
            text.append("\n")
            text.append("┌─ Matches ─────────────────────────────\n", style="bold yellow")
            for snippet in highlights:
                text.append("│ … ", style="yellow")
                text.append(highlight_tokens(snippet.replace("\n", " "), query))
                text.append(" …\n")
            text.append("└───────────────────────────────────────\n", style="yellow")

        text.append("\n")
        text.append("━━━ Resume Command ━━━\n", style="bold yellow")
        text.append("\n")
        resume_cmd = provider.get_resume_command(session) if provider else f"# Resume not available for {session.source}"
        text.append(f" {resume_cmd} ", style="bold white on blue")
        text.append("\n\n")
        text.append("Press ", style="dim")
        text.append("Enter", style="bold")
        text.append(" to copy | ", style="dim")
        text.append("t", style="bold")
        text.append(" timeline | ", style="dim")
        text.append("Shift+Tab", style="bold")
        text.append(" focus details", style="dim")

        self.update(text)

    def show_timeline(self, detail: SessionDetail):
        """Replace the panel with the session's message and tool timeline."""
        self.session = detail
        header = Text()
        header.append("━━━ Timeline ━━━\n", style="bold cyan")
        header.append("Session: ", style="bold")
        header.append(f"{truncate(detail.title or detail.id, 60)}\n")
        header.append("Events: ", style="bold")
        header.append(f"{len(detail.events)}\n\n")
        if not detail.events:
            header.append("(no events found)\n", style="dim")
        self.update(header)

        for i, event in enumerate(detail.events, 1):
            block = self.build_event_text(i, event)
            if block is not None:
                self._transcript.append(block)
                self.write(block)

        footer = Text()
        footer.append("━━━ End of Timeline ━━━\n", style="bold cyan")
        footer.append("Press ", style="dim")
        footer.append("Escape", style="bold")
        footer.append(" to return to list | ", style="dim")
        footer.append("y", style="bold")
        footer.append(" copy all", style="dim")
        self.write(footer)

    @staticmethod
    def build_event_text(i: int, event: SessionEvent) -> Optional[Text]:
        """Rich text for one timeline event; None for events not shown."""
        when = format_local(event.timestamp, "%H:%M:%S", "--:--:--")
        if event.type in (USER_MESSAGE, ASSISTANT_MESSAGE):
            if event.type == USER_MESSAGE:
                label, style, border = f"┌─ [{i}] User {when} ", "bold green", "green"
            else:
                label, style, border = f"┌─ [{i}] Assistant {when} ", "bold magenta", "magenta"
            text = Text()
            text.append(label, style=style)
            text.append("─" * max(1, 40 - len(label)), style=border)
            text.append("\n")
            for line in event.content.split("\n"):
                text.append("│ ", style=border)
                text.append(f"{line}\n")
            text.append("└", style=border)
            text.append("─" * 40, style=border)
            text.append("\n\n")
            return text
        if event.type == TOOL_START:
            return Text(f"  ⚙ {when} {event.data.get('tool', 'unknown')}\n", style="cyan")
        if event.type == TOOL_COMPLETE and event.data.get("success") is False:
            return Text(f"  ✗ {when} {event.data.get('tool', 'unknown')} failed\n", style="red")
        if event.type in ("abort", "session.error"):
            return Text(f"  ! {when} {event.type}\n", style="red bold")
        return None

    def clear_display(self):
        """Clear the display."""
        self.session = None
        self.update(Text("Select a session to view details", style="dim"))
