"""Storage locations and parsing limits.

Every path can be overridden through an environment variable so the
providers can be pointed at a copy of someone else's logs.
"""

import os
import sys
from pathlib import Path

# Hard caps applied by every provider
MAX_FILE_SIZE = 200 * 1024 * 1024  # 200MB, larger payloads are treated as absent
MAX_TEXT_LENGTH = 10_000
TRUNCATION_MARKER = "\n...(truncated)"
IMAGE_VALUE_LIMIT = 1000
IMAGE_PLACEHOLDER = "[image data omitted]"
TITLE_LENGTH = 80

# Duration and status windows (milliseconds)
MAX_GAP_MS = 300_000
RECENT_ACTIVITY_MS = 300_000
RECENT_MARKER_MS = 600_000

DEFAULT_CACHE_TTL = 30.0


def _env_path(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    if value:
        return Path(value).expanduser()
    return default


def copilot_sessions_dir() -> Path:
    """Root of the Copilot CLI session-state directories."""
    return _env_path("SESSION_LENS_COPILOT_DIR", Path.home() / ".copilot" / "session-state")


def claude_projects_dir() -> Path:
    """Root of the Claude Code per-project transcript directories."""
    return _env_path("SESSION_LENS_CLAUDE_DIR", Path.home() / ".claude" / "projects")


def vscode_data_dirs() -> list[Path]:
    """VS Code user data directories (stable and Insiders) that exist on this machine."""
    override = os.environ.get("SESSION_LENS_VSCODE_DIRS")
    if override:
        candidates = [Path(p).expanduser() for p in override.split(os.pathsep) if p]
    else:
        home = Path.home()
        candidates = []
        for variant in ("Code", "Code - Insiders"):
            if sys.platform == "darwin":
                candidates.append(home / "Library" / "Application Support" / variant)
            elif sys.platform == "win32":
                app_data = os.environ.get("APPDATA")
                base = Path(app_data) if app_data else home / "AppData" / "Roaming"
                candidates.append(base / variant)
            else:
                candidates.append(home / ".config" / variant)
    return [d for d in candidates if d.exists()]


def cache_ttl() -> float:
    """TTL in seconds for cached aggregate operations."""
    try:
        return float(os.environ.get("SESSION_LENS_CACHE_TTL", DEFAULT_CACHE_TTL))
    except ValueError:
        return DEFAULT_CACHE_TTL
