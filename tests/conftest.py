import json

import pytest

from deepsearch.core.web_search.page_fetcher import FetchResult
from deepsearch.core.web_search.providers import SearchHit
from deepsearch.models.config import SearchGraphConfig


# Prompt markers, one per generation call site
PLAN = "search planning expert"
QUERY = "Build one optimised web search query"
RELEVANCE = "search result evaluator"
ANSWER = "You are a research assistant"
ADJUST = "Rewrite a search question"
SUMMARY = "You are a research writer"


class FakeGenerator:
    """Answers prompts by marker; a handler may be a string or a callable(prompt)."""

    def __init__(self, handlers=None, default="", name="fake"):
        self.handlers = handlers or {}
        self.default = default
        self.name = name
        self.calls = []

    async def generate(self, prompt, format="text"):
        self.calls.append((prompt, format))
        for marker, handler in self.handlers.items():
            if marker in prompt:
                return handler(prompt) if callable(handler) else handler
        return self.default

    def prompts(self, marker):
        return [prompt for prompt, _ in self.calls if marker in prompt]


class FakeWebSearch:
    """
    `results`: list of hits, or callable(query_text) -> hits.
    `pages`: url -> content string, FetchResult, or an exception to raise.
    """

    def __init__(self, results=None, pages=None):
        self.results = results if results is not None else []
        self.pages = pages or {}
        self.searches = []
        self.fetches = []
        self.closed = False

    async def search(self, query_text, engine=None):
        self.searches.append(query_text)
        if callable(self.results):
            return self.results(query_text)
        return list(self.results)

    async def fetch(self, url):
        self.fetches.append(url)
        page = self.pages.get(url, "")
        if isinstance(page, Exception):
            raise page
        if isinstance(page, FetchResult):
            return page
        return FetchResult(content=page, final_url=url)

    async def close(self):
        self.closed = True


def hit(url, title="Result"):
    return SearchHit(title=title, url=url, description=f"About {title}")


def scores(*values):
    return json.dumps({"scores": [{"index": i, "score": v} for i, v in enumerate(values)]})


def question_of(prompt):
    """Text after the last '## Question' heading of a prompt."""
    return prompt.rsplit("## Question", 1)[-1]


@pytest.fixture
def search_config():
    return SearchGraphConfig(log_dir=None, fetch_timeout=2.0, max_concurrent_nodes=2)
