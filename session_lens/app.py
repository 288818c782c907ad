"""Session Lens browser TUI application."""

import logging
import subprocess
from typing import Optional

from rich.text import Text
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Input, ListView, LoadingIndicator, Static

from .models import SearchResult, SessionDetail, SessionMeta
from .search import ALL_SOURCES
from .store import SessionStore
from .ui import APP_CSS, SessionDetailPanel, SessionItem

logger = logging.getLogger(__name__)

MAX_DISPLAY = 500


def copy_to_clipboard(text: str) -> bool:
    for command in (["pbcopy"], ["wl-copy"], ["xclip", "-selection", "clipboard"]):
        try:
            subprocess.run(command, input=text.encode(), check=True)
            return True
        except (OSError, subprocess.CalledProcessError):
            continue
    return False


class SessionLensBrowser(App):
    """TUI for browsing sessions of every installed assistant."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("enter", "copy_command", "Copy"),
        Binding("slash", "activate_search", "Search"),
        Binding("f", "cycle_filter", "Filter"),
        Binding("r", "refresh", "Refresh"),
        Binding("t", "show_timeline", "Timeline"),
        Binding("shift+tab", "focus_detail", "Detail", priority=True),
        Binding("escape", "back_to_list", "Back"),
        Binding("y", "copy_timeline", "Copy All", show=False),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    def __init__(self, store: Optional[SessionStore] = None, source_filter: str | None = None):
        super().__init__()
        self.store = store if store is not None else SessionStore()

        # Active source filter (None = all)
        self.active_source_filter: str | None = source_filter

        # Available providers (populated on mount)
        self.available_providers: list = []

        self.all_sessions: list[SessionMeta] = []
        self.visible_sessions: list[SessionMeta] = []
        self.selected_session: Optional[SessionMeta] = None
        self.selected_detail: Optional[SessionDetail] = None
        self.focus_pane = "list"

        # Search state
        self._search_mode = False
        self._search_query = ""
        self._search_results: dict[str, SearchResult] = {}

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="left-container"):
                yield Static("", id="filter-bar")
                yield Input(placeholder="Search sessions... (Enter to search, Escape to cancel)", id="search-input")
                with Vertical(id="session-container"):
                    yield Static("[bold]Sessions[/] [dim](newest first)[/]", id="session-header", classes="list-header")
                    yield ListView(id="session-list")
            with Vertical(id="detail-container"):
                with Vertical(id="loading-container"):
                    yield LoadingIndicator(id="loading-indicator")
                    yield Static("Loading sessions...", id="loading-status")
                yield SessionDetailPanel(id="detail-panel")
        yield Footer()

    def on_mount(self):
        """Load sessions when app mounts."""
        self.title = "Session Lens"
        self.available_providers = [p for p in self.store.providers if p.is_available()]
        self._show_loading(True)
        self._update_filter_bar()
        self._load_sessions_background()

    def _show_loading(self, loading: bool):
        container = self.query_one("#loading-container")
        if loading:
            container.add_class("visible")
        else:
            container.remove_class("visible")
        self.query_one("#detail-panel").display = not loading

    @work(exclusive=True, thread=True, group="sessions")
    def _load_sessions_background(self):
        """List sessions off the UI thread."""
        sessions = self.store.list_sessions()
        self.call_from_thread(self._on_sessions_loaded, sessions)

    def _on_sessions_loaded(self, sessions: list[SessionMeta]):
        """Called when background session loading completes."""
        self.all_sessions = sessions
        self._show_loading(False)
        self._apply_source_filter()
        self._update_filter_bar()
        self._update_header()
        self._populate_session_list()

        session_list = self.query_one("#session-list", ListView)
        if not self.visible_sessions:
            detail = self.query_one("#detail-panel", SessionDetailPanel)
            text = Text()
            text.append("No sessions found!", style="bold red")
            text.append("\n\nChecked providers:\n")
            for provider in self.store.providers:
                text.append(f"  {provider.icon} {provider.display_name}: {provider.get_sessions_dir()}\n")
            detail.update(text)
        else:
            session_list.index = 0
            session_list.focus()

    def _apply_source_filter(self):
        if self.active_source_filter:
            self.visible_sessions = [s for s in self.all_sessions if s.source == self.active_source_filter]
        else:
            self.visible_sessions = list(self.all_sessions)

    def _update_filter_bar(self):
        """Update the filter bar display."""
        filter_bar = self.query_one("#filter-bar", Static)

        if len(self.available_providers) <= 1:
            filter_bar.add_class("hidden")
            return

        filter_bar.remove_class("hidden")

        text = Text()
        text.append("Filter: ", style="dim")
        if self.active_source_filter is None:
            text.append("[●All] ", style="bold cyan")
        else:
            text.append("[○All] ", style="dim")

        for provider in self.available_providers:
            if self.active_source_filter == provider.name:
                text.append(f"[●{provider.icon}{provider.display_name}] ", style=f"bold {provider.color}")
            else:
                text.append(f"[○{provider.icon}{provider.display_name}] ", style="dim")

        text.append(f" | {len(self.visible_sessions)} sessions", style="dim")
        filter_bar.update(text)

    def _update_header(self):
        total = len(self.visible_sessions)
        shown = min(total, MAX_DISPLAY)
        count_text = f"{shown}/{total}" if total > MAX_DISPLAY else str(total)
        header = self.query_one("#session-header", Static)

        provider = self.store.get_provider(self.active_source_filter) if self.active_source_filter else None
        if provider:
            header.update(f"[bold]{provider.icon} {provider.display_name}[/] [dim]({count_text} sessions)[/]")
        else:
            header.update(f"[bold]All Sessions[/] [dim]({count_text} newest first)[/]")

    def _populate_session_list(self, sessions: Optional[list[SessionMeta]] = None):
        """Batch mount list items for the given sessions (default: the visible ones)."""
        session_list = self.query_one("#session-list", ListView)
        session_list.clear()
        sessions = self.visible_sessions if sessions is None else sessions
        items = [SessionItem(s, self.store.get_provider(s.source)) for s in sessions[:MAX_DISPLAY]]
        session_list.mount(*items)

    def action_cycle_filter(self):
        """Cycle through source filters."""
        if len(self.available_providers) <= 1:
            return

        options = [None] + [p.name for p in self.available_providers]
        try:
            current_idx = options.index(self.active_source_filter)
        except ValueError:
            current_idx = 0
        self.active_source_filter = options[(current_idx + 1) % len(options)]

        if self._search_mode:
            self._run_search(self._search_query)
            self._update_filter_bar()
            return

        self._apply_source_filter()
        self._update_filter_bar()
        self._update_header()
        self._populate_session_list()

        session_list = self.query_one("#session-list", ListView)
        if self.visible_sessions:
            session_list.index = 0
        session_list.focus()
        self.focus_pane = "list"

    def action_refresh(self):
        """Drop cached listings and the search index, then reload."""
        self.store.refresh()
        self._search_mode = False
        self._search_results = {}
        self._show_loading(True)
        self.notify("Refreshing sessions...")
        self._load_sessions_background()

    @on(ListView.Highlighted, "#session-list")
    def on_session_highlighted(self, event: ListView.Highlighted):
        if event.item and isinstance(event.item, SessionItem):
            self.selected_session = event.item.session
            self.selected_detail = None
            self._load_detail(event.item.session)

    @work(exclusive=True, thread=True, group="detail")
    def _load_detail(self, session: SessionMeta):
        """Parse the highlighted session off the UI thread."""
        detail = self.store.load_for(session)
        self.call_from_thread(self._show_detail, session, detail)

    def _show_detail(self, session: SessionMeta, detail: Optional[SessionDetail]):
        if self.selected_session is not session:
            return
        self.selected_detail = detail
        result = self._search_results.get(session.qualified_id) if self._search_mode else None
        self.query_one("#detail-panel", SessionDetailPanel).show_session(
            session,
            detail,
            self.store.get_provider(session.source),
            highlights=result.highlights if result else None,
            query=self._search_query,
        )

    def action_show_timeline(self):
        """Show the full message and tool timeline of the selected session."""
        if self.selected_detail is None:
            self.notify("Session detail not loaded yet", severity="warning")
            return
        detail_panel = self.query_one("#detail-panel", SessionDetailPanel)
        detail_panel.show_timeline(self.selected_detail)
        self.focus_pane = "detail"
        detail_panel.focus()
        detail_panel.scroll_home()

    def action_copy_timeline(self):
        """Copy the displayed timeline to the clipboard."""
        text = self.query_one("#detail-panel", SessionDetailPanel).get_transcript_text()
        if not text:
            self.notify("No timeline to copy", severity="warning")
            return
        if copy_to_clipboard(text):
            self.notify("Timeline copied to clipboard")
        else:
            self.notify("Failed to copy to clipboard", severity="error")

    def action_focus_detail(self):
        """Toggle between the session list and the detail panel (Shift+Tab)."""
        if self.focus_pane == "detail":
            self.focus_pane = "list"
            self.query_one("#session-list", ListView).focus()
        else:
            self.focus_pane = "detail"
            self.query_one("#detail-panel", SessionDetailPanel).focus()

    def action_back_to_list(self):
        """Go back to the session list (Escape)."""
        search_input = self.query_one("#search-input", Input)
        if search_input.has_focus:
            self._cancel_search()
            return

        if self.focus_pane == "detail":
            self.focus_pane = "list"
            self.query_one("#session-list", ListView).focus()
            if self.selected_session is not None:
                self._show_detail(self.selected_session, self.selected_detail)
            return

        if self._search_mode:
            self._clear_search()
            return

        self.action_quit()

    def action_activate_search(self):
        """Activate search mode (/)."""
        search_input = self.query_one("#search-input", Input)
        search_input.add_class("visible")
        search_input.value = ""
        search_input.focus()

    def _cancel_search(self):
        """Cancel search input without executing."""
        search_input = self.query_one("#search-input", Input)
        search_input.remove_class("visible")
        search_input.value = ""
        self.query_one("#session-list", ListView).focus()
        self.focus_pane = "list"

    def _clear_search(self):
        """Clear search results and restore the normal list."""
        self._search_mode = False
        self._search_query = ""
        self._search_results = {}
        self._cancel_search()
        self._apply_source_filter()
        self._update_header()
        self._populate_session_list()
        if self.visible_sessions:
            self.query_one("#session-list", ListView).index = 0

    @on(Input.Submitted, "#search-input")
    def on_search_submitted(self, event: Input.Submitted):
        """Handle search input submission."""
        query = event.value.strip()
        if not query:
            self._cancel_search()
            return
        self.query_one("#search-input", Input).remove_class("visible")
        self.notify("Searching...")
        self._run_search(query)

    @work(exclusive=True, thread=True, group="search")
    def _run_search(self, query: str):
        """Build the index if needed and rank sessions, off the UI thread."""
        results = self.store.search(query, limit=MAX_DISPLAY, source=self.active_source_filter or ALL_SOURCES)
        self.call_from_thread(self._show_search_results, query, results)

    def _show_search_results(self, query: str, results: list[SearchResult]):
        self._search_mode = True
        self._search_query = query

        by_key = {s.qualified_id: s for s in self.all_sessions}
        self._search_results = {}
        matches = []
        for result in results:
            key = f"{result.entry.source}:{result.entry.id}"
            if key in by_key:
                self._search_results[key] = result
                matches.append(by_key[key])

        self.query_one("#session-header", Static).update(
            f"[bold yellow]Search:[/] [white]{query}[/] [dim]({len(matches)} sessions)[/]"
        )
        self._populate_session_list(matches)

        session_list = self.query_one("#session-list", ListView)
        if matches:
            session_list.index = 0
        session_list.focus()
        self.focus_pane = "list"

    def action_copy_command(self):
        """Copy resume command to clipboard."""
        if self.selected_session:
            cmd = self.store.resume_command(self.selected_session)
            if cmd and copy_to_clipboard(cmd):
                self.notify(f"Copied: {cmd}", title="Command Copied")
            elif cmd:
                self.notify(f"Command: {cmd}", title="Copy Failed")

    def action_cursor_down(self):
        """Move cursor down in focused pane."""
        if self.focus_pane == "detail":
            self.query_one("#detail-panel", SessionDetailPanel).scroll_down()
        else:
            self.query_one("#session-list", ListView).action_cursor_down()

    def action_cursor_up(self):
        """Move cursor up in focused pane."""
        if self.focus_pane == "detail":
            self.query_one("#detail-panel", SessionDetailPanel).scroll_up()
        else:
            self.query_one("#session-list", ListView).action_cursor_up()
