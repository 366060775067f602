"""
Query Builder - turns a question (plus optional context) into a search query
with engine directives.
"""

import calendar
import re
from datetime import date
from typing import Callable, List, Optional
from loguru import logger

from deepsearch.core.llm.response_parser import parse_response
from deepsearch.core.search_graph.models import Query, QueryResponse


RECENT_TERMS = ("recent", "latest", "newest", "current", "this year", "最新", "近期")
ACADEMIC_TERMS = ("academic", "research", "paper", "study", "journal", "学术", "研究", "论文")
NEWS_TERMS = ("news", "report", "headline", "新闻", "报道")

ACADEMIC_SITE = "site:scholar.google.com"
NEWS_SITE = "site:news.google.com"
RECENT_MONTHS = 3


def months_before(day: date, months: int) -> date:
    """Same calendar day `months` earlier, clamped to the month length."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _mentions(text: str, terms) -> bool:
    lowered = text.lower()
    for term in terms:
        if re.search(r"[a-z]", term):
            if re.search(rf"\b{re.escape(term)}", lowered):
                return True
        elif term in lowered:
            return True
    return False


class QueryBuilder:
    """
    Builds one optimised search query per question.

    One generation call proposes the query; deterministic heuristics then
    add date/site operators. A malformed response falls back to the raw
    question text.
    """

    def __init__(self, generator, today: Callable[[], date] = date.today):
        self.generator = generator
        self._today = today

    async def build(self, content: str, context: Optional[str] = None) -> Query:
        prompt = f"""Build one optimised web search query for the question below.

Rules:
- Use concise, precise keywords; avoid conversational phrasing
- Keep the core search intent
- If the question targets a specific domain or time range, add matching search operators (e.g. "site:example.com", "after:2024-01-01")
- Optionally name the best search platform ("bing" or "duckduckgo")
- Respond ONLY with valid JSON, no markdown or extra text

Output format:
{{"text": "optimised query text", "platform": "bing", "commands": ["site:example.com"]}}

Question: {content}"""
        if context:
            prompt += f"\nContext: {context}"

        response = await self.generator.generate(prompt, "json")
        fallback = QueryResponse(text=content)
        parsed = parse_response(response, QueryResponse, fallback)

        if not parsed.text.strip():
            parsed = fallback

        query = self.optimize(Query(text=parsed.text.strip(), platform=parsed.platform, commands=parsed.commands))
        logger.info(f"[QueryBuilder] '{content[:80]}' -> '{query.render()[:120]}'")
        return query

    def optimize(self, query: Query) -> Query:
        """Append date and site operators implied by the query wording."""
        commands: List[str] = list(query.commands)

        if _mentions(query.text, RECENT_TERMS):
            commands.append(f"after:{months_before(self._today(), RECENT_MONTHS).isoformat()}")

        if _mentions(query.text, ACADEMIC_TERMS):
            commands.append(ACADEMIC_SITE)

        if _mentions(query.text, NEWS_TERMS):
            commands.append(NEWS_SITE)

        return Query(text=query.text, platform=query.platform, commands=list(dict.fromkeys(commands)))
