"""Provider registry and discovery."""

from typing import Type

from .base import SessionProvider

# Registry of all available providers, in registration order
_PROVIDERS: dict[str, Type[SessionProvider]] = {}

# Detail requests try providers in this order; the first is_member() match wins
PRIORITY = ("vscode", "claude-code", "cli")


def register_provider(provider_class: Type[SessionProvider]) -> Type[SessionProvider]:
    """Decorator to register a provider class."""
    _PROVIDERS[provider_class.name] = provider_class
    return provider_class


def get_provider(name: str) -> SessionProvider | None:
    """Get an instance of a provider by name."""
    provider_class = _PROVIDERS.get(name)
    if provider_class:
        return provider_class()
    return None


def get_all_providers() -> list[SessionProvider]:
    """Get instances of all registered providers in routing priority order."""
    def rank(name: str) -> int:
        return PRIORITY.index(name) if name in PRIORITY else len(PRIORITY)

    return [_PROVIDERS[name]() for name in sorted(_PROVIDERS, key=rank)]


def get_available_providers() -> list[SessionProvider]:
    """Get instances of all available (installed) providers."""
    return [p for p in get_all_providers() if p.is_available()]


# Import providers to trigger registration
from . import copilot_cli  # noqa: F401, E402
from . import vscode  # noqa: F401, E402
from . import claude_code  # noqa: F401, E402
