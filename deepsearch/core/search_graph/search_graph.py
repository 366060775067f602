"""
Search Graph — plans a question into a tree of sub-questions, resolves every
node with parent-before-children ordering, and synthesizes a cited answer.

Node state machine: NOT_STARTED → RUNNING → FINISHED
                                          ↘ ERROR
Children of an ERROR node go straight to ERROR without running.
"""

import asyncio
import json
import re
import time
import uuid
from typing import Callable, List, Optional, Tuple
from loguru import logger

from deepsearch.core.llm.response_parser import parse_response, strip_code_fence
from deepsearch.core.search_graph.models import (
    AdjustmentResponse, EventStatus, Node, NodeState, PlanResponse, ProgressEvent,
    Query, QuestionAnswer, RawNode, ResolverResult, SearchGraphResult,
    ROOT_NODE_ID, SENTINEL_ANSWERS,
)
from deepsearch.core.search_graph.progress import ProgressChannel
from deepsearch.core.search_graph.query_builder import QueryBuilder
from deepsearch.core.search_graph.resolver import Resolver
from deepsearch.core.search_graph.run_log import RunLog
from deepsearch.core.search_graph.task_graph import TaskGraph
from deepsearch.core.search_graph.url_cache import UrlCache
from deepsearch.models.config import SearchGraphConfig


PLACEHOLDER = re.compile(r"\{[^{}]+\}")

# (work item) node id + the planned children waiting on it
WorkItem = Tuple[str, List[RawNode]]


class SearchGraph:
    """
    Orchestrator for one search run at a time.

    Flow:
    1. PLANNING: one generation call decomposes the question into a raw tree
    2. EXECUTION: a pool of workers resolves ready nodes; a node's children
       are created and queued only once the node itself is terminal
    3. SYNTHESIS: once every descendant is terminal, one summarization call
       over all answered nodes produces the cited root answer

    plan() never raises; degradation shows up as empty answers and
    ERROR nodes in the returned result.
    """

    def __init__(
        self,
        generator,
        web_search,
        config: Optional[SearchGraphConfig] = None,
        query_builder: Optional[QueryBuilder] = None,
        resolver_factory: Optional[Callable[[UrlCache], Resolver]] = None,
    ):
        self.generator = generator
        self.web_search = web_search
        self.config = config or SearchGraphConfig()
        self.query_builder = query_builder or QueryBuilder(generator)
        self._resolver_factory = resolver_factory or (
            lambda cache: Resolver(self.generator, self.web_search, cache=cache, config=self.config)
        )

        self.graph = TaskGraph()
        self.cache = self._new_cache()
        self._progress: Optional[ProgressChannel] = None
        self._run_log = RunLog(None, "")

    def _new_cache(self) -> UrlCache:
        return UrlCache(ttl=self.config.cache_ttl, max_entries=self.config.cache_max_entries)

    async def plan(
        self,
        question: str,
        progress: Optional[ProgressChannel] = None,
        run_id: Optional[str] = None,
    ) -> SearchGraphResult:
        """
        Run the full pipeline for one question.

        Args:
            question: The question to answer
            progress: Optional channel receiving node lifecycle events; closed on return
            run_id: Optional id for the run log (generated if not provided)

        Returns:
            SearchGraphResult with nodes, edges, root answer, timing and pages
        """
        run_id = run_id or uuid.uuid4().hex
        self.graph = TaskGraph()
        self.cache = self._new_cache()
        self._progress = progress
        self._run_log = RunLog(self.config.log_dir, run_id)

        timing = {}
        start_time = time.time()
        logger.info(f"[SearchGraph] Run {run_id}: {question[:120]}")

        try:
            root = self.graph.add_root(question)
            self._emit(root, EventStatus.CREATED)
            root.state = NodeState.RUNNING
            self._emit(root, EventStatus.RUNNING)

            # ── Phase 1: PLANNING ──
            phase = time.time()
            raw_nodes = await self._plan_nodes(question)
            timing["plan_ms"] = (time.time() - phase) * 1000

            # ── Phase 2: EXECUTION ──
            phase = time.time()
            await self._execute(raw_nodes)
            timing["execute_ms"] = (time.time() - phase) * 1000

            # ── Phase 3: SYNTHESIS ──
            phase = time.time()
            await self._summarize(question)
            timing["summary_ms"] = (time.time() - phase) * 1000

        except Exception as e:
            logger.error(f"[SearchGraph] Run {run_id} failed: {e}")
            self._run_log.write("error", {"stage": "plan", "error": str(e)})

        finally:
            timing["total_ms"] = (time.time() - start_time) * 1000
            if progress is not None:
                progress.close()

        result = self._build_result(timing)
        self._run_log.write("result", {"answer": result.answer, "timing": timing, "stats": self.graph.get_stats()})
        logger.info(
            f"[SearchGraph] Run {run_id} done: {len(result.nodes)} nodes, "
            f"{len(result.pages)} pages, {timing['total_ms']:.0f}ms"
        )
        return result

    # ═══════════════════════════════════════════════════
    # Planning
    # ═══════════════════════════════════════════════════

    async def _plan_nodes(self, question: str) -> List[RawNode]:
        prompt = f"""You are a search planning expert. Split the question into sub-questions that can each be answered by one web search.

Rules:
- Each node must be a single question about one specific person, thing, event, time, place or fact; never a compound question
- Questions that do not depend on each other are siblings and are searched in parallel
- A question that needs the answer of another question is a child of that question
- In a child, write values that come from an ancestor's answer as a placeholder in braces, e.g. "What is {{author}}'s homepage?"
- Optionally give each node one or more prepared search queries
- Respond ONLY with valid JSON, no markdown or extra text

Output format:
{{
  "nodes": [
    {{
      "content": "Who wrote the book X?",
      "queries": [{{"text": "book X author", "platform": "bing", "commands": []}}],
      "children": [
        {{"content": "What is {{author}}'s homepage?", "queries": [{{"text": "{{author}} official homepage"}}], "children": []}}
      ]
    }}
  ]
}}

## Question
{question}"""

        response = await self.generator.generate(prompt, "json")
        plan = parse_response(response, PlanResponse, PlanResponse(), list_field="nodes")
        self._run_log.write("plan", {"response": response, "nodes": [n.model_dump() for n in plan.nodes]})

        if not plan.nodes:
            logger.warning("[SearchGraph] Planner produced no nodes")
        else:
            logger.info(f"[SearchGraph] Planned {len(plan.nodes)} top-level nodes")
        return plan.nodes

    # ═══════════════════════════════════════════════════
    # Scheduling
    # ═══════════════════════════════════════════════════

    async def _execute(self, raw_nodes: List[RawNode]):
        """Resolve the whole tree with a bounded worker pool."""
        if not raw_nodes:
            return

        ready: "asyncio.Queue[WorkItem]" = asyncio.Queue()
        self._materialize(ROOT_NODE_ID, raw_nodes, ready)

        workers = [
            asyncio.create_task(self._worker(ready, i))
            for i in range(self.config.max_concurrent_nodes)
        ]
        try:
            await ready.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    def _materialize(self, parent_id: str, raw_nodes: List[RawNode], ready: "asyncio.Queue[WorkItem]"):
        """Register children of a terminal node and queue them for execution."""
        for raw in raw_nodes:
            node = self.graph.add_node(raw.content, parent_id, raw.queries)
            self._emit(node, EventStatus.CREATED, parent_id=parent_id)
            ready.put_nowait((node.id, raw.children))

    async def _worker(self, ready: "asyncio.Queue[WorkItem]", worker_id: int):
        while True:
            node_id, children = await ready.get()
            try:
                await self._execute_node(node_id)
            except Exception as e:
                node = self.graph.get_node(node_id)
                logger.error(f"[SearchGraph] Worker {worker_id} failed on node {node_id}: {e}")
                if not node.state.is_terminal:
                    node.state = NodeState.ERROR
                    node.error = str(e)[:300]
                    self._emit(node, EventStatus.ERROR, error=node.error)
            try:
                if self.graph.get_node(node_id).state == NodeState.ERROR:
                    self._propagate_failure(node_id, children)
                else:
                    self._materialize(node_id, children, ready)
            except Exception as e:
                logger.error(f"[SearchGraph] Failed to schedule children of {node_id}: {e}")
            finally:
                ready.task_done()

    def _propagate_failure(self, parent_id: str, raw_nodes: List[RawNode]):
        """Create the planned subtree of a failed node directly in ERROR."""
        for raw in raw_nodes:
            node = self.graph.add_node(raw.content, parent_id, raw.queries)
            self._emit(node, EventStatus.CREATED, parent_id=parent_id)
            node.state = NodeState.ERROR
            node.error = "parent failed"
            self._emit(node, EventStatus.ERROR, error=node.error)
            self._propagate_failure(node.id, raw.children)

    # ═══════════════════════════════════════════════════
    # Node Execution
    # ═══════════════════════════════════════════════════

    async def _execute_node(self, node_id: str):
        node = self.graph.get_node(node_id)
        node.state = NodeState.RUNNING
        self._emit(node, EventStatus.RUNNING)

        ancestors = [
            qa for qa in self.graph.ancestor_responses(node_id)
            if qa.answer not in SENTINEL_ANSWERS
        ]
        if ancestors and self._needs_adjustment(node):
            await self._adjust(node, ancestors)

        resolver = self._resolver_factory(self.cache)
        context = self._format_context(ancestors)

        # ── Attempt 1: planned query ──
        query: Optional[Query] = None
        result: Optional[ResolverResult] = None
        try:
            if node.queries:
                query = node.queries[0]
            else:
                query = await self.query_builder.build(node.content, context)
                node.queries.append(query)
            result = await resolver.run(node.content, query, ancestors)
        except Exception as e:
            logger.warning(f"[SearchGraph] Attempt 1 raised for '{node.content[:80]}': {e}")

        if result is not None and result.is_usable:
            self._finish(node, result)
            return

        logger.info(f"[SearchGraph] Attempt 1 unusable for '{node.content[:80]}', retrying with new keywords")
        self._run_log.write("retry", {"node_id": node.id, "content": node.content, "answer": result.answer if result else None})

        # ── Attempt 2: rebuilt query ──
        try:
            previous = query.render() if query else node.content
            retry_context = f"Use different keywords than the previous query: \"{previous}\""
            if context:
                retry_context = f"{context}\n{retry_context}"
            query = await self.query_builder.build(node.content, retry_context)
            node.queries.append(query)
            result = await resolver.run(node.content, query, ancestors)
        except Exception as e:
            node.error = str(e)[:300]
            self._emit(node, EventStatus.ERROR, error=node.error)
            node.state = NodeState.ERROR
            logger.error(f"[SearchGraph] Node '{node.content[:80]}' failed: {e}")
            self._run_log.write("error", {"node_id": node.id, "error": node.error})
            return

        if result.is_usable or result.answer in SENTINEL_ANSWERS:
            self._finish(node, result)
            return

        node.state = NodeState.ERROR
        node.error = "no usable answer after retry"
        node.timing = result.timing
        self._emit(node, EventStatus.ERROR, error=node.error, timing=result.timing)

    def _finish(self, node: Node, result: ResolverResult):
        node.answer = result.answer
        node.pages = result.pages
        node.timing = result.timing
        node.state = NodeState.FINISHED
        self._emit(node, EventStatus.FINISHED, answer=node.answer, pages=node.pages, timing=node.timing)
        self._run_log.write("node_result", {"node_id": node.id, "content": node.content, "answer": node.answer})

    def _needs_adjustment(self, node: Node) -> bool:
        if node.adjusted:
            return False
        return bool(PLACEHOLDER.search(node.content)) or any(PLACEHOLDER.search(q.text) for q in node.queries)

    async def _adjust(self, node: Node, ancestors: List[QuestionAnswer]):
        """Specialize a templated node with its ancestors' answers (once)."""
        node.adjusted = True
        known = "\n".join(f"- Q: {qa.content}\n  A: {qa.answer}" for qa in ancestors)
        queries = json.dumps([q.model_dump() for q in node.queries], ensure_ascii=False)

        prompt = f"""Rewrite a search question using facts that are already known.

Rules:
- Replace every placeholder in braces (e.g. {{author}}) with the concrete value from the known facts
- Keep the intent of the question unchanged
- Rewrite the search queries the same way
- Respond ONLY with valid JSON, no markdown or extra text

Output format:
{{"content": "rewritten question", "queries": [{{"text": "rewritten query", "platform": null, "commands": []}}]}}

## Known facts
{known}

## Question
{node.content}

## Queries
{queries}"""

        response = await self.generator.generate(prompt, "json")
        adjusted = parse_response(response, AdjustmentResponse, None)
        if adjusted is None or not adjusted.content.strip():
            logger.warning(f"[SearchGraph] Adjustment unusable, keeping '{node.content[:80]}'")
            return

        original = node.content
        node.content = adjusted.content.strip()
        if adjusted.queries:
            node.queries = adjusted.queries
        else:
            node.queries = [q for q in node.queries if not PLACEHOLDER.search(q.text)]

        logger.info(f"[SearchGraph] Adjusted '{original[:60]}' -> '{node.content[:60]}'")
        self._run_log.write("adjust", {"node_id": node.id, "from": original, "to": node.content})

    def _format_context(self, ancestors: List[QuestionAnswer]) -> Optional[str]:
        if not ancestors:
            return None
        return "\n".join(f"{qa.content}: {qa.answer[:300]}" for qa in ancestors)

    # ═══════════════════════════════════════════════════
    # Root Synthesis
    # ═══════════════════════════════════════════════════

    async def _summarize(self, question: str):
        root = self.graph.get_node(ROOT_NODE_ID)
        descendants = self.graph.get_descendants(ROOT_NODE_ID)

        pending = [nid for nid in descendants if not self.graph.nodes[nid].state.is_terminal]
        if pending:
            logger.warning(f"[SearchGraph] {len(pending)} nodes not terminal, skipping synthesis")
            self._run_log.write("error", {"stage": "summary", "pending": pending})
            return

        children = self.graph.get_children(ROOT_NODE_ID)
        if not descendants:
            root.state = NodeState.FINISHED
            self._emit(root, EventStatus.FINISHED, answer=root.answer, children=children)
            return

        answered = [
            QuestionAnswer(content=node.content, answer=node.answer)
            for node in self.graph.nodes.values()
            if node.id != ROOT_NODE_ID and node.answer
        ]
        listing = "\n\n".join(
            f"[{i}] Question: {qa.content}\nAnswer: {qa.answer}"
            for i, qa in enumerate(answered, 1)
        )

        prompt = f"""You are a research writer. Answer the original question using the sub-question answers below.

Rules:
- Combine the answers into a complete, well-structured response of one or more paragraphs
- Cite every answer you use by its index in brackets, e.g. [1], [2]
- If the answers are insufficient, say which part remains unanswered

## Sub-question answers
{listing}

## Original question
{question}"""

        response = await self.generator.generate(prompt, "text")
        root.answer = strip_code_fence(response)
        root.state = NodeState.FINISHED
        self._emit(root, EventStatus.FINISHED, answer=root.answer, children=children)

    # ═══════════════════════════════════════════════════
    # Events & Results
    # ═══════════════════════════════════════════════════

    def _emit(self, node: Node, status: EventStatus, **extra):
        event = ProgressEvent(node_id=node.id, status=status, content=node.content, **extra)
        if self._progress is not None:
            self._progress.publish(event)
        self._run_log.write(f"node_{status.value}", event)

    def _build_result(self, timing) -> SearchGraphResult:
        root = self.graph.get_node(ROOT_NODE_ID)
        return SearchGraphResult(
            nodes=dict(self.graph.nodes),
            edges=dict(self.graph.edges),
            answer=root.answer if root else "",
            timing=timing,
            pages=[page for node in self.graph.nodes.values() for page in node.pages],
        )

    def export_graph(self) -> str:
        return self.graph.export_graph()

    async def close(self):
        await self.web_search.close()
