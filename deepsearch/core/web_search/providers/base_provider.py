"""
Abstract base class for all web search providers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from deepsearch.core.web_search.session_pool import SessionPool


@dataclass
class SearchHit:
    """Standardized search result from any provider."""
    title: str
    url: str
    description: str = ""
    platform: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseSearchProvider(ABC):
    """Abstract base class for search providers."""

    def __init__(self, name: str, sessions: SessionPool, max_results: int = 10):
        self.name = name
        self.sessions = sessions
        self.max_results = max_results

    @abstractmethod
    async def search(self, query: str) -> List[SearchHit]:
        """
        Execute a search query and return standardized results.
        Must be implemented by all providers.
        """
        pass

    def _clean_snippet(self, text: str, max_length: int = 500) -> str:
        """Clean and truncate a text snippet."""
        if not text:
            return ""
        text = " ".join(text.split())
        if len(text) > max_length:
            text = text[:max_length] + "..."
        return text
