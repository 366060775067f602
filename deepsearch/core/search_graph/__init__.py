"""
Search Graph Module — question decomposition tree with per-node web resolution
and cited bottom-up synthesis.
"""

from deepsearch.core.search_graph.search_graph import SearchGraph
from deepsearch.core.search_graph.progress import ProgressChannel

__all__ = ["SearchGraph", "ProgressChannel"]
