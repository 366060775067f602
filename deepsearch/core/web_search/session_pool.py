"""
Session Pool - explicitly owned, capped pool of HTTP sessions shared by the
search providers and the page fetcher.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional
import httpx
from loguru import logger


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class SessionPool:
    """
    Acquire-on-demand pool of httpx.AsyncClient sessions.

    A session is created when no idle one is available. On release it goes
    back to the idle list, or is closed when the idle list is full. Release
    happens on every exit path of `acquire()`.
    """

    def __init__(
        self,
        max_sessions: int = 4,
        timeout: float = 10.0,
        session_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ):
        self.max_sessions = max_sessions
        self.timeout = timeout
        self._factory = session_factory or self._default_session
        self._idle: List[httpx.AsyncClient] = []
        self._in_use = 0
        self._closed = False

    def _default_session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
        )

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._closed:
            raise RuntimeError("Session pool is closed")

        session = self._idle.pop() if self._idle else self._factory()
        self._in_use += 1
        try:
            yield session
        finally:
            self._in_use -= 1
            await self._release(session)

    async def _release(self, session: httpx.AsyncClient):
        if self._closed or len(self._idle) >= self.max_sessions or session.is_closed:
            await session.aclose()
            return
        self._idle.append(session)

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use(self) -> int:
        return self._in_use

    async def close(self):
        """Close every idle session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        idle, self._idle = self._idle, []
        for session in idle:
            try:
                await session.aclose()
            except Exception as e:
                logger.warning(f"[SessionPool] Failed to close session: {e}")
        logger.info(f"[SessionPool] Closed {len(idle)} idle sessions")
