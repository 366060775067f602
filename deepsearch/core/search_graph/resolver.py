"""
Resolver — answers one sub-question: search, relevance filter, fetch, synthesis.
"""

import json
import time
from typing import Any, Dict, List, Optional
from loguru import logger

from deepsearch.core.llm.response_parser import parse_response, strip_code_fence
from deepsearch.core.search_graph.job_queue import JobQueue
from deepsearch.core.search_graph.models import (
    INSUFFICIENT_CONTENT_ANSWER, NO_LINKS_ANSWER,
    Page, Query, QuestionAnswer, RelevanceResponse, ResolverResult,
)
from deepsearch.core.search_graph.url_cache import UrlCache
from deepsearch.models.config import SearchGraphConfig


RELEVANCE_THRESHOLD = 60


class Resolver:
    """
    Per-node resolution pipeline.

    1. SEARCH: candidate links from the search collaborator
    2. RELEVANCE: one batched scoring call, keep score >= 60
    3. FETCH: page content through the bounded job queue, URL cache first
    4. SYNTHESIS: node-level answer from ancestor context + page content

    Empty search or relevance results end with a sentinel answer; collaborator
    failures drop individual pages. Nothing is raised past run().
    """

    def __init__(
        self,
        generator,
        web_search,
        cache: Optional[UrlCache] = None,
        config: Optional[SearchGraphConfig] = None,
    ):
        self.generator = generator
        self.web_search = web_search
        self.config = config or SearchGraphConfig()
        self.cache = cache if cache is not None else UrlCache(ttl=self.config.cache_ttl, max_entries=self.config.cache_max_entries)

    async def run(
        self,
        content: str,
        query: Query,
        ancestor_responses: Optional[List[QuestionAnswer]] = None,
    ) -> ResolverResult:
        ancestor_responses = ancestor_responses or []
        timing: Dict[str, float] = {}
        start_time = time.time()

        try:
            # ── 1. Search ──
            phase = time.time()
            candidates = await self._search(query)
            timing["search_ms"] = (time.time() - phase) * 1000

            if not candidates:
                logger.info(f"[Resolver] No links for '{query.render()[:80]}'")
                return self._result(content, [], NO_LINKS_ANSWER, timing, start_time)

            # ── 2. Relevance ──
            phase = time.time()
            pages = await self._select_relevant(content, candidates)
            timing["relevance_ms"] = (time.time() - phase) * 1000

            if not pages:
                logger.info(f"[Resolver] No relevant candidates out of {len(candidates)} for '{content[:80]}'")
                return self._result(content, [], INSUFFICIENT_CONTENT_ANSWER, timing, start_time)

            # ── 3. Fetch ──
            phase = time.time()
            pages = await self._fetch_pages(pages)
            timing["fetch_ms"] = (time.time() - phase) * 1000

            if not pages:
                logger.warning(f"[Resolver] Every page fetch failed for '{content[:80]}'")
                return self._result(content, [], "", timing, start_time)

            # ── 4. Synthesis ──
            phase = time.time()
            answer = await self.answer(content, pages, ancestor_responses)
            timing["synthesis_ms"] = (time.time() - phase) * 1000

            return self._result(content, pages, answer, timing, start_time)

        except Exception as e:
            logger.error(f"[Resolver] Resolution failed for '{content[:80]}': {e}")
            return self._result(content, [], "", timing, start_time)

    def _result(self, content, pages, answer, timing, start_time) -> ResolverResult:
        timing["total_ms"] = (time.time() - start_time) * 1000
        return ResolverResult(content=content, pages=pages, answer=answer, timing=timing)

    async def _search(self, query: Query) -> List[Any]:
        try:
            hits = await self.web_search.search(query.render(), query.platform)
        except Exception as e:
            logger.warning(f"[Resolver] Search collaborator failed: {e}")
            return []
        return [hit for hit in hits or [] if getattr(hit, "url", None)]

    # ═══════════════════════════════════════════════════
    # Relevance
    # ═══════════════════════════════════════════════════

    async def _select_relevant(self, content: str, candidates: List[Any]) -> List[Page]:
        scores = await self._score(content, candidates)

        scored = []
        for index, hit in enumerate(candidates):
            score = scores.get(index, 0.0)
            if score < RELEVANCE_THRESHOLD:
                continue
            scored.append(Page(
                title=getattr(hit, "title", "") or "",
                url=hit.url,
                description=getattr(hit, "description", None),
                relevance=score,
                platform=getattr(hit, "platform", None),
                metadata=getattr(hit, "metadata", None) or None,
            ))

        scored.sort(key=lambda p: p.relevance, reverse=True)
        pages = scored[:self.config.max_results]
        for ordinal, page in enumerate(pages):
            page.id = ordinal
        return pages

    async def _score(self, content: str, candidates: List[Any]) -> Dict[int, float]:
        listing = [
            {
                "index": i,
                "title": getattr(hit, "title", ""),
                "description": getattr(hit, "description", ""),
                "platform": getattr(hit, "platform", None),
                "metadata": getattr(hit, "metadata", None),
                "url": hit.url,
            }
            for i, hit in enumerate(candidates)
        ]
        prompt = f"""You are a search result evaluator. Score how relevant each search result is to the question, from 0 (unrelated) to 100 (directly answers it).

Judge by title, description, platform, metadata and URL. Score every index.
Respond ONLY with valid JSON, no markdown or extra text.

Output format:
{{"scores": [{{"index": 0, "score": 85}}, {{"index": 1, "score": 20}}]}}

Question: {content}

Results:
{json.dumps(listing, ensure_ascii=False, default=str)}"""

        response = await self.generator.generate(prompt, "json")
        parsed = parse_response(response, RelevanceResponse, RelevanceResponse(), list_field="scores")
        return {s.index: s.score for s in parsed.scores}

    # ═══════════════════════════════════════════════════
    # Fetch
    # ═══════════════════════════════════════════════════

    async def _fetch_pages(self, pages: List[Page]) -> List[Page]:
        queue = JobQueue(
            name="fetch:content",
            concurrency=self.config.max_concurrency,
            timeout=self.config.fetch_timeout,
            delay=self.config.fetch_delay,
            show_progress=True,
        )
        for page in pages:
            queue.push(lambda page=page: self._fetch_page(page))

        results = await queue.start()
        return [r.value for r in results if r.success and r.value is not None and r.value.content]

    async def _fetch_page(self, page: Page) -> Page:
        item = await self.cache.fetch(page.url, lambda: self._download(page.url))
        if item is None:
            content, final_url = "", page.url
        else:
            content, final_url = item.content, item.final_url

        update: Dict[str, Any] = {"content": content, "url": final_url}
        if final_url != page.url:
            update["metadata"] = {**(page.metadata or {}), "requested_url": page.url}
        return page.model_copy(update=update)

    async def _download(self, url: str):
        fetched = await self.web_search.fetch(url)
        return fetched.content, fetched.final_url or url

    # ═══════════════════════════════════════════════════
    # Synthesis
    # ═══════════════════════════════════════════════════

    async def answer(self, question: str, pages: List[Page], ancestor_responses: List[QuestionAnswer]) -> str:
        limit = self.config.max_content_per_page
        sources = [
            {"id": p.id, "title": p.title, "url": p.url, "content": (p.content or "")[:limit]}
            for p in pages
        ]
        known = [qa.model_dump() for qa in ancestor_responses]

        prompt = f"""You are a research assistant. Answer the question using the sources below.

Rules:
- Use the known facts as context; they answer earlier, broader questions
- Base the answer on the sources and cite them by id, e.g. [0]
- If the sources do not contain the answer, say what is missing
- Be concise and specific

## Known
{json.dumps(known, ensure_ascii=False)}

## Sources
{json.dumps(sources, ensure_ascii=False)}

## Question
{question}"""

        response = await self.generator.generate(prompt, "text")
        return strip_code_fence(response)
