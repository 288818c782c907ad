"""Session Lens - one view over Copilot CLI, VS Code Copilot Chat and Claude Code sessions."""

__version__ = "0.3.0"
