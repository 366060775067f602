"""
Web Search Engine - search/fetch collaborator used by the resolver.
"""
import re
import time
from typing import Dict, List, Optional
from loguru import logger

from deepsearch.core.web_search.page_fetcher import FetchResult, PageFetcher
from deepsearch.core.web_search.providers import BaseSearchProvider, BingSearchProvider, DuckDuckGoProvider, SearchHit
from deepsearch.core.web_search.session_pool import SessionPool
from deepsearch.models.config import SearchEngineKind, SearchGraphConfig


class WebSearchEngine:
    """
    Search and page retrieval over a set of engine providers.

    search() targets one engine (the configured default when none or an
    unknown one is named) and never raises; fetch() returns empty content on
    failure; close() releases the session pool.
    """

    def __init__(self, config: Optional[SearchGraphConfig] = None, sessions: Optional[SessionPool] = None):
        self.config = config or SearchGraphConfig()
        self._owns_sessions = sessions is None
        self.sessions = sessions or SessionPool(
            max_sessions=self.config.max_sessions,
            timeout=self.config.fetch_timeout,
        )
        self.providers: Dict[SearchEngineKind, BaseSearchProvider] = {
            SearchEngineKind.BING: BingSearchProvider(self.sessions, max_results=self.config.max_search_results),
            SearchEngineKind.DUCKDUCKGO: DuckDuckGoProvider(self.sessions, max_results=self.config.max_search_results),
        }
        self.fetcher = PageFetcher(self.sessions)
        self._closed = False
        logger.info(f"[WebSearch] Initialized with {len(self.providers)} providers (default: {self.config.search_engine.value})")

    def _resolve_engine(self, engine: Optional[str]) -> SearchEngineKind:
        if engine:
            try:
                return SearchEngineKind(engine.strip().lower())
            except ValueError:
                logger.debug(f"[WebSearch] Unknown engine '{engine}', using default")
        return self.config.search_engine

    async def search(self, query_text: str, engine: Optional[str] = None) -> List[SearchHit]:
        start_time = time.time()
        kind = self._resolve_engine(engine)

        # Remove "search for" prefixes that confuse engines
        clean_query = re.sub(
            r'^(please\s+)?(search\s+(the\s+web\s+)?for|find|google)\s+',
            '',
            query_text,
            flags=re.IGNORECASE,
        ).strip()

        try:
            hits = await self.providers[kind].search(clean_query)
        except Exception as e:
            logger.error(f"[WebSearch] {kind.value} search failed for '{clean_query}': {e}")
            return []

        unique: Dict[str, SearchHit] = {}
        for hit in hits:
            key = self._normalize_url(hit.url)
            if key and key not in unique:
                unique[key] = hit

        elapsed = (time.time() - start_time) * 1000
        logger.info(f"[WebSearch] {kind.value}: {len(hits)} raw -> {len(unique)} unique results in {elapsed:.0f}ms")
        return list(unique.values())

    async def fetch(self, url: str) -> FetchResult:
        return await self.fetcher.fetch(url)

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if self._owns_sessions:
            await self.sessions.close()

    def _normalize_url(self, url: str) -> str:
        """Normalize a URL for deduplication."""
        url = (url or "").strip().rstrip("/")
        url = re.sub(r'^https?://(www\.)?', '', url)
        url = url.split("#")[0]
        return url.lower()
