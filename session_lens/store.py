"""Session store: one facade over every provider, the result cache and the search index."""

import logging
from typing import Optional

from .analytics import compute_analytics
from .cache import ResultCache
from .config import cache_ttl
from .models import Analytics, SearchResult, SessionDetail, SessionMeta
from .providers import get_all_providers
from .providers.base import SessionProvider
from .search import ALL_SOURCES, DEFAULT_LIMIT, SearchIndex
from .timeutil import parse_timestamp_ms

logger = logging.getLogger(__name__)

LIST_KEY = "list_sessions"
ANALYTICS_KEY = "analytics"


def sort_sessions(sessions: list[SessionMeta]) -> list[SessionMeta]:
    """Newest first by creation time; ties broken by source then id."""
    ordered = sorted(sessions, key=lambda s: (s.source, s.id))
    return sorted(ordered, key=lambda s: parse_timestamp_ms(s.created_at) or 0, reverse=True)


class SessionStore:
    """Entry point for listing, loading, searching and summarizing sessions.

    ``list_sessions`` and ``get_analytics`` are cached for ``ttl`` seconds;
    ``refresh`` drops the cache and the search index together.
    """

    def __init__(
        self,
        providers: Optional[list[SessionProvider]] = None,
        cache: Optional[ResultCache] = None,
        ttl: Optional[float] = None,
    ):
        self.providers = providers if providers is not None else get_all_providers()
        self.cache = cache if cache is not None else ResultCache(cache_ttl() if ttl is None else ttl)
        self.index = SearchIndex(self.load_for)

    def get_provider(self, name: str) -> Optional[SessionProvider]:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    def list_sessions(self) -> list[SessionMeta]:
        return self.cache.cached_call(LIST_KEY, self._list_all)

    def _list_all(self) -> list[SessionMeta]:
        sessions = []
        for provider in self.providers:
            found = provider.list_metadata()
            logger.debug("%s: %d sessions", provider.name, len(found))
            sessions.extend(found)
        return sort_sessions(sessions)

    def get_session(self, session_id: str) -> Optional[SessionDetail]:
        """Load one session.

        ``"<source>:<id>"`` addresses a single provider; a bare id goes to the
        first provider (in priority order) that claims it.
        """
        source, sep, bare_id = session_id.partition(":")
        if sep:
            provider = self.get_provider(source)
            if provider is not None:
                return provider.load_detail(bare_id)

        for provider in self.providers:
            if provider.is_member(session_id):
                return provider.load_detail(session_id)
        return None

    def load_for(self, meta: SessionMeta) -> Optional[SessionDetail]:
        """Load the detail of a listed session from the provider that listed it."""
        provider = self.get_provider(meta.source)
        if provider is None:
            return None
        return provider.load_detail(meta.id)

    def get_analytics(self) -> Analytics:
        return self.cache.cached_call(ANALYTICS_KEY, lambda: compute_analytics(self.list_sessions(), self.load_for))

    def search(self, query: str, limit: int = DEFAULT_LIMIT, source: str = ALL_SOURCES) -> list[SearchResult]:
        self.index.build_index(self.list_sessions())
        return self.index.search(query, limit=limit, source=source)

    def resume_command(self, session: SessionMeta) -> Optional[str]:
        provider = self.get_provider(session.source)
        return provider.get_resume_command(session) if provider else None

    def refresh(self):
        self.cache.clear()
        self.index.clear()
