"""
DuckDuckGo Search Provider - Uses the ddgs library with a raw HTML fallback.
Completely free, no API key required.
"""
import asyncio
from typing import List
from bs4 import BeautifulSoup
from ddgs import DDGS
from loguru import logger

from deepsearch.core.web_search.providers.base_provider import BaseSearchProvider, SearchHit
from deepsearch.core.web_search.session_pool import SessionPool


class DuckDuckGoProvider(BaseSearchProvider):
    """Search provider using DuckDuckGo with library and raw fallback."""

    HTML_URL = "https://html.duckduckgo.com/html/"
    BACKENDS = ("duckduckgo", "auto")

    def __init__(self, sessions: SessionPool, max_results: int = 10):
        super().__init__(name="duckduckgo", sessions=sessions, max_results=max_results)

    async def search(self, query: str) -> List[SearchHit]:
        """Execute search via DuckDuckGo with fallback backends."""
        loop = asyncio.get_running_loop()

        # 1. Try library backends
        for backend in self.BACKENDS:
            try:
                results = await loop.run_in_executor(None, self._sync_search_lib, query, backend)
                if results:
                    logger.info(f"[WebSearch] DuckDuckGo ({backend}) returned {len(results)} results")
                    return results
            except Exception as e:
                logger.warning(f"[WebSearch] DuckDuckGo backend '{backend}' failed: {e}")

        # 2. Raw scraping fallback
        logger.warning("[WebSearch] All DuckDuckGo backends failed. Attempting raw HTML fallback...")
        results = await self._raw_html_fallback(query)
        logger.info(f"[WebSearch] DuckDuckGo (raw) returned {len(results)} results")
        return results

    def _sync_search_lib(self, query: str, backend: str) -> List[SearchHit]:
        results = []
        with DDGS() as ddgs:
            for r in ddgs.text(query, max_results=self.max_results, backend=backend) or []:
                url = r.get("href", r.get("link", ""))
                if not url:
                    continue
                results.append(SearchHit(
                    title=r.get("title", ""),
                    url=url,
                    description=self._clean_snippet(r.get("body", r.get("snippet", ""))),
                    platform=self.name,
                    metadata={"date": r["date"]} if r.get("date") else {},
                ))
        return results

    async def _raw_html_fallback(self, query: str) -> List[SearchHit]:
        """Fallback: scrape html.duckduckgo.com directly."""
        async with self.sessions.acquire() as session:
            resp = await session.post(
                self.HTML_URL,
                data={"q": query},
                headers={"Referer": "https://html.duckduckgo.com/"},
            )
            resp.raise_for_status()
            html = resp.text
        return self._parse_html(html)

    def _parse_html(self, html: str) -> List[SearchHit]:
        # <div class="result"> <h2 class="result__title"><a class="result__a">...</a></h2> <a class="result__snippet">...</a> </div>
        results = []
        soup = BeautifulSoup(html, "html.parser")

        for div in soup.find_all("div", class_="result"):
            title_a = div.find("a", class_="result__a")
            if not title_a or not title_a.get("href"):
                continue

            title = title_a.get_text(strip=True)
            snippet_a = div.find("a", class_="result__snippet")
            snippet = snippet_a.get_text(strip=True) if snippet_a else ""

            if title:
                results.append(SearchHit(
                    title=title,
                    url=title_a["href"],
                    description=self._clean_snippet(snippet),
                    platform=self.name,
                ))
                if len(results) >= self.max_results:
                    break

        return results
