"""FastAPI backend for the search graph"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime
import asyncio
import uuid
from loguru import logger

from deepsearch.core.llm.generator_pool import TextGeneratorPool
from deepsearch.core.search_graph import ProgressChannel, SearchGraph
from deepsearch.core.search_graph.models import ProgressEvent, SearchGraphResult
from deepsearch.core.web_search import WebSearchEngine
from deepsearch.models.config import AppConfig, ConfigurationError, load_config


app = FastAPI(title="DeepSearch API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared collaborators, one SearchGraph per request
config: Optional[AppConfig] = None
generator_pool: Optional[TextGeneratorPool] = None
web_search: Optional[WebSearchEngine] = None

_searches: Dict[str, "SearchSession"] = {}
_search_tasks: Dict[str, asyncio.Task] = {}


class SearchSession:
    """In-memory state of one submitted search."""

    def __init__(self, search_id: str, question: str):
        self.search_id = search_id
        self.question = question
        self.status = "running"
        self.progress: Dict[str, ProgressEvent] = {}
        self.result: Optional[SearchGraphResult] = None
        self.error: Optional[str] = None
        self.created_at = datetime.utcnow().isoformat()

    def to_dict(self) -> dict:
        return {
            "searchId": self.search_id,
            "question": self.question,
            "status": self.status,
            "createdAt": self.created_at,
            "progress": [event.model_dump(mode="json") for event in self.progress.values()],
            "result": self.result.model_dump(mode="json") if self.result else None,
            "error": self.error,
        }


@app.on_event("startup")
async def startup():
    global config, generator_pool, web_search
    if config is None:
        config = load_config()
    if generator_pool is None:
        try:
            generator_pool = TextGeneratorPool(config.llm_pool)
        except ConfigurationError as e:
            logger.error(f"[API] {e}; searches are disabled until a provider is configured")
    if web_search is None:
        web_search = WebSearchEngine(config.search)
    logger.info("[API] Search service started")


@app.on_event("shutdown")
async def shutdown():
    for task in _search_tasks.values():
        task.cancel()
    if web_search:
        await web_search.close()


# Request models
class SearchRequest(BaseModel):
    question: str


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "generators": generator_pool.size() if generator_pool else 0,
        "active_searches": sum(1 for s in _searches.values() if s.status == "running"),
    }


async def _run_search(session: SearchSession, graph: SearchGraph):
    channel = ProgressChannel()

    async def consume():
        async for event in channel:
            session.progress[event.node_id] = event

    consumer = asyncio.create_task(consume())
    result, error = None, None
    try:
        result = await graph.plan(session.question, channel, run_id=session.search_id)
    except Exception as e:
        logger.error(f"[API] Search {session.search_id} failed: {e}")
        error = str(e)
    finally:
        channel.close()
        await consumer
        _search_tasks.pop(session.search_id, None)

    # Status flips only once every progress event has been folded in
    session.result = result
    session.error = error
    session.status = "error" if error else "complete"

    retention = config.search_retention if config else 300.0
    asyncio.get_running_loop().call_later(retention, _searches.pop, session.search_id, None)


@app.post("/api/search")
async def start_search(request: SearchRequest):
    """Start a search. Returns immediately with the search id."""
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question must not be empty")
    if generator_pool is None or web_search is None:
        raise HTTPException(status_code=503, detail="No LLM providers configured")

    search_id = uuid.uuid4().hex
    session = SearchSession(search_id, question)
    _searches[search_id] = session

    graph = SearchGraph(generator_pool, web_search, config.search if config else None)
    _search_tasks[search_id] = asyncio.create_task(_run_search(session, graph))

    logger.info(f"[API] Search {search_id} started: {question[:80]}")
    return {"success": True, "data": {"searchId": search_id}}


@app.get("/api/search/{search_id}")
async def get_search(search_id: str):
    """Progress (latest event per node), the result once complete, and any error."""
    session = _searches.get(search_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Search not found")
    return {"success": True, "data": session.to_dict()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)
