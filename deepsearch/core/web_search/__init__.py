"""
Web Search Module
Provides engine search, page fetching and pooled HTTP sessions.
"""
from deepsearch.core.web_search.web_search_engine import WebSearchEngine
from deepsearch.core.web_search.session_pool import SessionPool

__all__ = ["WebSearchEngine", "SessionPool"]
