"""UI components for session-lens."""

from .widgets import (
    SessionItem,
    SessionDetailPanel,
)
from .styles import APP_CSS

__all__ = [
    "SessionItem",
    "SessionDetailPanel",
    "APP_CSS",
]
