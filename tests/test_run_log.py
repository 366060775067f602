import asyncio
import json

from conftest import PLAN, FakeGenerator, FakeWebSearch
from deepsearch.core.search_graph import ProgressChannel, SearchGraph
from deepsearch.core.search_graph.models import EventStatus, ProgressEvent
from deepsearch.core.search_graph.run_log import RunLog
from deepsearch.models.config import SearchGraphConfig


def test_disabled_without_log_dir(tmp_path):
    log = RunLog(None, "run-1")
    assert not log.enabled
    log.write("plan", {"nodes": []})
    assert list(tmp_path.iterdir()) == []


def test_entries_are_json_lines(tmp_path):
    log = RunLog(str(tmp_path / "logs"), "run-1")
    log.write("plan", {"nodes": []})
    log.write("node_created", ProgressEvent(node_id="root", status=EventStatus.CREATED, content="q"))

    lines = (tmp_path / "logs" / "run-1.jsonl").read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["name"] for e in entries] == ["plan", "node_created"]
    assert entries[1]["content"]["status"] == "created"
    assert all("timestamp" in e for e in entries)


def test_search_run_writes_its_log(tmp_path):
    config = SearchGraphConfig(log_dir=str(tmp_path))
    graph = SearchGraph(FakeGenerator({PLAN: '{"nodes": []}'}), FakeWebSearch(), config)
    asyncio.run(graph.plan("Why is the sky blue?", run_id="sky"))

    names = [json.loads(line)["name"] for line in (tmp_path / "sky.jsonl").read_text(encoding="utf-8").splitlines()]
    assert names[0] == "node_created"
    assert "plan" in names
    assert names[-1] == "result"


def test_progress_channel_ignores_events_after_close():
    channel = ProgressChannel()
    channel.publish(ProgressEvent(node_id="root", status=EventStatus.CREATED, content="q"))
    channel.close()
    channel.close()
    channel.publish(ProgressEvent(node_id="root", status=EventStatus.RUNNING, content="q"))

    async def drain():
        first = [e.status async for e in channel]
        again = await channel.get()
        return first, again

    statuses, again = asyncio.run(drain())
    assert statuses == [EventStatus.CREATED]
    assert again is None
    assert len(channel.history) == 1
