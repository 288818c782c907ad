"""CSS styles for the session-lens TUI."""

APP_CSS = """
Screen {
    layout: horizontal;
}

#left-container {
    width: 55%;
    height: 100%;
}

#session-container {
    height: 1fr;
    border: solid $primary;
}

#detail-container {
    width: 45%;
    height: 100%;
    border: solid $secondary;
    padding: 1;
}

#session-list {
    height: 1fr;
}

.list-header {
    height: auto;
    background: $surface;
    padding: 0 1;
    text-style: bold;
}

#session-header {
    color: $primary;
}

#filter-bar {
    height: 1;
    padding: 0 1;
    background: $surface;
}

#filter-bar.hidden {
    display: none;
}

#search-input {
    display: none;
    height: 3;
    border: solid $warning;
    padding: 0 1;
}

#search-input.visible {
    display: block;
}

#detail-panel {
    height: 100%;
    overflow-y: auto;
    scrollbar-gutter: stable;
}

#detail-panel:focus {
    border: solid $success;
}

#loading-container {
    width: 100%;
    height: 100%;
    align: center middle;
    display: none;
}

#loading-container.visible {
    display: block;
}

#loading-status {
    text-align: center;
    width: 100%;
    padding: 1;
    color: $text-muted;
}

#loading-indicator {
    width: 100%;
    height: 3;
}

SessionItem {
    height: 1;
    padding: 0 1;
}

SessionItem:hover {
    background: $surface-lighten-1;
}

ListView:focus > ListItem.-active {
    background: $primary-darken-1;
}

ListView.-has-focus > ListItem.-active {
    background: $primary;
}

Footer {
    background: $surface;
}
"""
