import asyncio
import json
from datetime import date

from conftest import QUERY, FakeGenerator
from deepsearch.core.search_graph.models import Query
from deepsearch.core.search_graph.query_builder import QueryBuilder, months_before


def _builder(response, today=date(2024, 5, 31)):
    generator = FakeGenerator({QUERY: response})
    return QueryBuilder(generator, today=lambda: today), generator


def test_months_before_clamps_to_month_end():
    assert months_before(date(2024, 5, 31), 3) == date(2024, 2, 29)
    assert months_before(date(2024, 1, 15), 3) == date(2023, 10, 15)
    assert months_before(date(2023, 3, 31), 1) == date(2023, 2, 28)


def test_malformed_response_falls_back_to_question():
    builder, _ = _builder("sorry, I can't help with that")
    query = asyncio.run(builder.build("Who maintains the requests library?"))

    assert query.text == "Who maintains the requests library?"
    assert query.platform is None
    assert query.commands == []


def test_empty_query_text_falls_back_to_question():
    builder, _ = _builder('{"text": "   ", "platform": "bing"}')
    query = asyncio.run(builder.build("Population of Lyon"))
    assert query.text == "Population of Lyon"


def test_generated_query_keeps_platform_and_commands():
    builder, generator = _builder(json.dumps({
        "text": "pydantic v2 migration guide",
        "platform": "duckduckgo",
        "commands": ["site:docs.pydantic.dev"],
    }))
    query = asyncio.run(builder.build("How do I migrate to pydantic v2?", context="Earlier: uses FastAPI"))

    assert query.text == "pydantic v2 migration guide"
    assert query.platform == "duckduckgo"
    assert query.commands == ["site:docs.pydantic.dev"]
    assert query.render() == "pydantic v2 migration guide site:docs.pydantic.dev"

    prompt, format = generator.calls[0]
    assert format == "json"
    assert "Context: Earlier: uses FastAPI" in prompt


def test_recent_academic_and_news_operators():
    builder, _ = _builder('{"text": "latest research news on protein folding"}')
    query = asyncio.run(builder.build("What is new in protein folding?"))

    assert query.commands == [
        "after:2024-02-29",
        "site:scholar.google.com",
        "site:news.google.com",
    ]


def test_operators_are_not_duplicated():
    builder, _ = _builder('{"text": "election news", "commands": ["site:news.google.com"]}')
    query = asyncio.run(builder.build("Election results"))
    assert query.commands == ["site:news.google.com"]


def test_chinese_terms_trigger_operators():
    builder, _ = _builder('{"text": "量子计算 最新 论文"}')
    query = asyncio.run(builder.build("量子计算进展"))
    assert "site:scholar.google.com" in query.commands
    assert any(c.startswith("after:") for c in query.commands)


def test_latin_terms_match_on_word_start_only():
    builder = QueryBuilder(FakeGenerator(), today=lambda: date(2024, 5, 31))
    query = builder.optimize(Query(text="password reporting tool"))
    # "report" is a news term and matches as a prefix of "reporting"
    assert query.commands == ["site:news.google.com"]

    query = builder.optimize(Query(text="nonrecent wallpaper office"))
    assert query.commands == []
