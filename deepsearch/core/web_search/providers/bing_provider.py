"""
Bing Search Provider - Scrapes Bing search results.
No API key required.
"""
from typing import List
from bs4 import BeautifulSoup
from loguru import logger

from deepsearch.core.web_search.providers.base_provider import BaseSearchProvider, SearchHit
from deepsearch.core.web_search.session_pool import SessionPool


class BingSearchProvider(BaseSearchProvider):
    """Search provider that scrapes Bing search results."""

    SEARCH_URL = "https://www.bing.com/search"

    HEADERS = {
        "Referer": "https://www.bing.com/",
        "Cookie": "SRCHHPGUSR=SRCHLANG=en",  # Force English
    }

    def __init__(self, sessions: SessionPool, max_results: int = 10):
        super().__init__(name="bing", sessions=sessions, max_results=max_results)

    async def search(self, query: str) -> List[SearchHit]:
        """Execute search via Bing scraping."""
        params = {
            "q": query,
            "count": self.max_results + 5,
            "form": "QBLH",
        }
        async with self.sessions.acquire() as session:
            resp = await session.get(self.SEARCH_URL, params=params, headers=self.HEADERS)
            resp.raise_for_status()
            html = resp.text

        results = self._parse_results(html)
        logger.info(f"[WebSearch] Bing returned {len(results)} results for: {query}")
        return results

    def _parse_results(self, html: str) -> List[SearchHit]:
        """Parse search results from Bing HTML response using BeautifulSoup."""
        results = []
        soup = BeautifulSoup(html, "html.parser")

        # Bing result blocks have class 'b_algo'
        for block in soup.find_all("li", class_="b_algo"):
            h2 = block.find("h2")
            a_tag = h2.find("a") if h2 else None
            if not a_tag:
                continue

            url = a_tag.get("href")
            title = a_tag.get_text(strip=True)
            if not url or not url.startswith("http"):
                continue

            snippet = ""
            caption_div = block.find("div", class_="b_caption")
            p_tag = (caption_div.find("p") if caption_div else None) or block.find("p")
            if p_tag:
                snippet = p_tag.get_text(strip=True)
            elif caption_div:
                snippet = caption_div.get_text(strip=True)

            cite = block.find("cite")
            results.append(SearchHit(
                title=title,
                url=url,
                description=self._clean_snippet(snippet),
                platform=self.name,
                metadata={"cite": cite.get_text(strip=True)} if cite else {},
            ))

            if len(results) >= self.max_results:
                break

        return results
