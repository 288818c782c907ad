"""Full-text search over session messages."""

import logging
import re
import threading
from typing import Callable, Optional

from .models import MESSAGE_TYPES, SearchEntry, SearchResult, SessionDetail, SessionMeta

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
ALL_SOURCES = "all"

CONTEXT_CHARS = 60
MAX_WINDOWS = 10
MAX_SNIPPET_CHARS = 2 * CONTEXT_CHARS + 1
MAX_HIGHLIGHTS = 3

TITLE_BONUS = 0.5
DIRECTORY_BONUS = 0.2

CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def strip_code_blocks(text: str) -> str:
    """Replace fenced code blocks with a space so code does not dominate matches."""
    return CODE_BLOCK_RE.sub(" ", text)


def tokenize(query: str) -> list[str]:
    """Lowercase, split on non-alphanumerics and keep tokens of two or more chars."""
    return [t for t in TOKEN_SPLIT_RE.split(query.lower()) if len(t) >= 2]


def count_occurrences(haystack: str, token: str) -> int:
    """Non-overlapping occurrences of ``token`` in ``haystack``."""
    return haystack.count(token)


def trim_to_word_boundary(text: str, start: int, end: int) -> str:
    """Shrink ``text[start:end]`` inward so it neither starts nor ends mid-word."""
    s, e = start, end
    if s > 0 and not text[s - 1].isspace():
        while s < e and not text[s].isspace():
            s += 1
    if e < len(text) and not text[e].isspace():
        while e > s and not text[e - 1].isspace():
            e -= 1
    return text[s:e].strip()


def extract_highlights(raw_content: str, tokens: list[str]) -> list[str]:
    """Up to three snippets of context around the token matches in ``raw_content``."""
    lower = raw_content.lower()
    windows = []
    for token in tokens:
        idx = lower.find(token)
        while idx != -1:
            windows.append((max(0, idx - CONTEXT_CHARS), min(len(raw_content), idx + CONTEXT_CHARS)))
            # past the cap, each later token still contributes its first match
            if len(windows) >= MAX_WINDOWS:
                break
            idx = lower.find(token, idx + len(token))

    windows.sort()
    merged: list[list[int]] = []
    for start, end in windows:
        if merged and start <= merged[-1][1]:
            last = merged[-1]
            last[1] = min(max(last[1], end), last[0] + MAX_SNIPPET_CHARS)
        else:
            if len(merged) >= MAX_HIGHLIGHTS:
                break
            merged.append([start, end])

    highlights = []
    for start, end in merged:
        snippet = trim_to_word_boundary(raw_content, start, end)
        if snippet:
            highlights.append(snippet)
    return highlights


def to_search_entry(meta: SessionMeta, detail: SessionDetail) -> SearchEntry:
    content = []
    for event in detail.events:
        if event.type in MESSAGE_TYPES and event.content.strip():
            content.append(strip_code_blocks(event.content))
    return SearchEntry(
        id=meta.id,
        source=meta.source,
        title=meta.title or meta.id,
        working_directory=meta.working_directory or "",
        date=meta.updated_at,
        content=content,
    )


class SearchIndex:
    """In-memory index of message text, built lazily from a session list.

    ``build_index`` is a no-op while entries exist, so detail loading happens
    at most once per refresh cycle. ``clear`` keeps the remembered session
    list and the next ``search`` rebuilds from it.
    """

    def __init__(self, load_detail: Callable[[SessionMeta], Optional[SessionDetail]]):
        self._load_detail = load_detail
        self._entries: list[SearchEntry] = []
        self._sessions: Optional[list[SessionMeta]] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def build_index(self, sessions: list[SessionMeta]):
        with self._lock:
            self._sessions = list(sessions)
            if self._entries:
                return
            self._entries = self._build(self._sessions)

    def _build(self, sessions: list[SessionMeta]) -> list[SearchEntry]:
        entries = []
        for meta in sessions:
            detail = self._load_detail(meta)
            if detail is None:
                logger.debug("Not indexing %s: detail unavailable", meta.qualified_id)
                continue
            entries.append(to_search_entry(meta, detail))
        logger.debug("Indexed %d of %d sessions", len(entries), len(sessions))
        return entries

    def search(self, query: str, limit: int = DEFAULT_LIMIT, source: str = ALL_SOURCES) -> list[SearchResult]:
        """Rank indexed sessions against ``query``.

        Each token scores occurrences / word count over the joined content,
        plus a bonus when it appears in the title or working directory.
        """
        if not query or not query.strip():
            return []

        with self._lock:
            if not self._entries:
                if self._sessions is None:
                    return []
                self._entries = self._build(self._sessions)
            entries = list(self._entries)

        tokens = tokenize(query)
        if not tokens:
            return []

        results = []
        for entry in entries:
            if source != ALL_SOURCES and entry.source != source:
                continue

            raw_content = " ".join(entry.content)
            joined = raw_content.lower()
            word_count = len(joined.split()) or 1
            title = entry.title.lower()
            directory = entry.working_directory.lower()

            score = 0.0
            for token in tokens:
                count = count_occurrences(joined, token)
                if count:
                    score += count / word_count
                if token in title:
                    score += TITLE_BONUS
                if token in directory:
                    score += DIRECTORY_BONUS

            if score <= 0:
                continue
            results.append(SearchResult(entry=entry, score=score, highlights=extract_highlights(raw_content, tokens)))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:max(limit, 0)]

    def clear(self):
        with self._lock:
            self._entries = []
