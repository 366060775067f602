"""
Search providers for the Web Search module.
"""
from deepsearch.core.web_search.providers.base_provider import BaseSearchProvider, SearchHit
from deepsearch.core.web_search.providers.bing_provider import BingSearchProvider
from deepsearch.core.web_search.providers.duckduckgo_provider import DuckDuckGoProvider

__all__ = [
    "BaseSearchProvider",
    "SearchHit",
    "BingSearchProvider",
    "DuckDuckGoProvider",
]
