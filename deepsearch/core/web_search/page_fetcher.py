"""
Page Fetcher - downloads a page through the session pool and extracts its
readable text. Goes beyond search snippets to the full article body.
"""

import re
from dataclasses import dataclass
from typing import Tuple
import httpx
import trafilatura
from bs4 import BeautifulSoup
from loguru import logger

from deepsearch.core.web_search.session_pool import SessionPool


@dataclass
class FetchResult:
    content: str
    final_url: str


class PageFetcher:
    """
    Fetches a URL and extracts text with a two-tier strategy:
    1. trafilatura (best quality for articles)
    2. BeautifulSoup (raw fallback)

    Failures produce empty content instead of raising.
    """

    NOISE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "form", "iframe", "noscript"]

    def __init__(self, sessions: SessionPool, max_content: int = 50000):
        self.sessions = sessions
        self.max_content = max_content

    async def fetch(self, url: str) -> FetchResult:
        try:
            async with self.sessions.acquire() as session:
                response = await session.get(url)
                response.raise_for_status()
                final_url = str(response.url)
                content_type = response.headers.get("content-type", "")
                html = response.text

            if content_type and "html" not in content_type and "text" not in content_type:
                logger.info(f"[PageFetcher] Skipping non-text content ({content_type}): {url}")
                return FetchResult(content="", final_url=final_url)

            title, content = self._extract_content(html, final_url)
            if len(content) > self.max_content:
                content = content[:self.max_content] + "\n\n[Content truncated...]"
            if title and content and not content.startswith(title):
                content = f"{title}\n\n{content}"

            return FetchResult(content=content, final_url=final_url)

        except httpx.TimeoutException:
            logger.warning(f"[PageFetcher] Timeout fetching {url}")
        except httpx.HTTPStatusError as e:
            logger.warning(f"[PageFetcher] HTTP {e.response.status_code} fetching {url}")
        except Exception as e:
            logger.warning(f"[PageFetcher] Failed to fetch {url}: {str(e)[:200]}")

        return FetchResult(content="", final_url=url)

    def _extract_content(self, html: str, url: str) -> Tuple[str, str]:
        """Returns: (title, content)"""
        title = ""
        content = ""

        if not html:
            return title, content

        # Tier 1: trafilatura
        try:
            extracted = trafilatura.extract(
                html,
                include_comments=False,
                include_tables=True,
                favor_recall=True,
                url=url,
            )
            if extracted and len(extracted.strip()) > 100:
                content = extracted
                metadata = trafilatura.extract_metadata(html)
                if metadata and metadata.title:
                    title = metadata.title
        except Exception as e:
            logger.debug(f"[PageFetcher] trafilatura failed for {url}: {e}")

        # Tier 2: BeautifulSoup raw extraction
        if not content:
            soup = BeautifulSoup(html, "html.parser")

            title_tag = soup.find("title")
            if title_tag:
                title = title or title_tag.get_text(strip=True)

            for tag in soup(self.NOISE_TAGS):
                tag.decompose()

            main_content = soup.find("article") or soup.find("main") or soup.find("body") or soup
            content = main_content.get_text(separator="\n", strip=True)

        return title, self._clean_text(content)

    def _clean_text(self, text: str) -> str:
        """Clean extracted text by removing excessive whitespace and noise."""
        if not text:
            return ""

        text = re.sub(r'\n{3,}', '\n\n', text)
        text = re.sub(r'[ \t]{2,}', ' ', text)

        # Drop very short lines (likely nav items)
        lines = [line.strip() for line in text.split('\n')]
        return '\n'.join(line for line in lines if len(line) > 3 or line == "").strip()
