import json
import time

import pytest
from fastapi.testclient import TestClient

from conftest import ANSWER, PLAN, RELEVANCE, SUMMARY, FakeGenerator, FakeWebSearch, hit, scores
from deepsearch import main
from deepsearch.core.llm.generator_pool import TextGeneratorPool
from deepsearch.models.config import AppConfig, LLMPoolConfig, SearchGraphConfig


@pytest.fixture
def client(monkeypatch):
    generator = FakeGenerator({
        PLAN: json.dumps({"nodes": [{"content": "Who created Python?", "queries": ["python creator"]}]}),
        RELEVANCE: scores(90),
        ANSWER: "Guido van Rossum [0]",
        SUMMARY: "Python was created by Guido van Rossum [1].",
    })
    web = FakeWebSearch(results=[hit("https://python.example/history")],
                        pages={"https://python.example/history": "Guido van Rossum created Python."})

    monkeypatch.setattr(main, "config", AppConfig(search=SearchGraphConfig(log_dir=None)))
    monkeypatch.setattr(main, "generator_pool", TextGeneratorPool(LLMPoolConfig(), generators=[generator]))
    monkeypatch.setattr(main, "web_search", web)

    with TestClient(main.app) as test_client:
        yield test_client


def _wait_for(client, search_id, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        data = client.get(f"/api/search/{search_id}").json()["data"]
        if data["status"] != "running":
            return data
        time.sleep(0.02)
    raise AssertionError("search did not finish")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_submit_and_poll(client):
    response = client.post("/api/search", json={"question": "Who created Python?"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    search_id = body["data"]["searchId"]

    data = _wait_for(client, search_id)
    assert data["status"] == "complete"
    assert data["error"] is None
    assert data["result"]["answer"] == "Python was created by Guido van Rossum [1]."
    assert len(data["result"]["nodes"]) == 2

    # Latest event per node
    progress = {event["node_id"]: event["status"] for event in data["progress"]}
    assert progress["root"] == "finished"
    assert set(progress.values()) == {"finished"}
    assert len(progress) == 2


def test_unknown_search_is_404(client):
    response = client.get("/api/search/does-not-exist")
    assert response.status_code == 404


def test_blank_question_is_rejected(client):
    response = client.post("/api/search", json={"question": "   "})
    assert response.status_code == 400


def test_submit_without_providers_is_503(client, monkeypatch):
    monkeypatch.setattr(main, "generator_pool", None)
    response = client.post("/api/search", json={"question": "Who created Python?"})
    assert response.status_code == 503


def test_finished_search_expires_after_retention(client, monkeypatch):
    monkeypatch.setattr(main, "config", AppConfig(search=SearchGraphConfig(log_dir=None), search_retention=0.05))
    search_id = client.post("/api/search", json={"question": "Who created Python?"}).json()["data"]["searchId"]

    deadline = time.time() + 5.0
    while client.get(f"/api/search/{search_id}").status_code == 200:
        assert time.time() < deadline, "finished search was never evicted"
        time.sleep(0.02)

    assert client.get(f"/api/search/{search_id}").status_code == 404
