from deepsearch.core.llm.response_parser import normalize_response, parse_response, strip_code_fence
from deepsearch.core.search_graph.models import PlanResponse, QueryResponse, RelevanceResponse


def test_fenced_and_bare_json_parse_identically():
    bare = '{"text": "python asyncio", "commands": ["site:docs.python.org"]}'
    fenced = f"```json\n{bare}\n```"
    plain_fence = f"```\n{bare}\n```"

    assert normalize_response(bare) == normalize_response(fenced) == normalize_response(plain_fence)
    assert normalize_response(fenced)["text"] == "python asyncio"


def test_non_json_is_returned_unchanged():
    text = "I could not find anything useful."
    assert normalize_response(text) == text
    assert normalize_response("") == ""


def test_json_embedded_in_prose():
    data = normalize_response('Here is the plan: {"nodes": []} hope it helps')
    assert data == {"nodes": []}


def test_strip_code_fence_keeps_unfenced_text():
    assert strip_code_fence("  plain answer  ") == "plain answer"
    assert strip_code_fence("```markdown\n# Title\nBody\n```") == "# Title\nBody"
    assert strip_code_fence("") == ""


def test_parse_response_falls_back_on_non_object():
    fallback = QueryResponse(text="original question")
    assert parse_response("not json at all", QueryResponse, fallback) is fallback
    assert parse_response('"just a string"', QueryResponse, fallback) is fallback


def test_parse_response_falls_back_on_schema_mismatch():
    fallback = QueryResponse(text="original question")
    assert parse_response('{"platform": "bing"}', QueryResponse, fallback) is fallback


def test_parse_response_wraps_bare_list():
    parsed = parse_response('[{"index": 0, "score": 75}]', RelevanceResponse, RelevanceResponse(), list_field="scores")
    assert parsed.scores[0].index == 0
    assert parsed.scores[0].score == 75


def test_scores_are_clamped():
    parsed = parse_response('{"scores": [{"index": 0, "score": 150}, {"index": 1, "score": -5}]}',
                            RelevanceResponse, RelevanceResponse())
    assert [s.score for s in parsed.scores] == [100, 0]


def test_plan_accepts_string_queries_and_missing_children():
    plan = parse_response(
        '```json\n{"nodes": [{"content": "Who wrote X?", "queries": ["X author"], "children": null}]}\n```',
        PlanResponse,
        PlanResponse(),
    )
    node = plan.nodes[0]
    assert node.queries[0].text == "X author"
    assert node.children == []
