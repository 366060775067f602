"""
Round-robin pool of text generators.
"""
import threading
from typing import Dict, List, Optional
from loguru import logger

from deepsearch.core.llm.text_generator import ResponseFormat, TextGenerator
from deepsearch.models.config import ConfigurationError, LLMPoolConfig


class TextGeneratorPool:
    """
    Rotates across independently configured backends behind a single
    generate() capability. Rotation is guarded so concurrent node
    executions never skip or repeat an index.
    """

    def __init__(self, config: LLMPoolConfig, generators: Optional[List[TextGenerator]] = None):
        if not config.providers and not generators:
            raise ConfigurationError("Text generator pool needs at least one provider")
        self.config = config
        self._explicit = generators
        self._lock = threading.Lock()
        self._pool: List[TextGenerator] = []
        self._index = 0
        self._initialize_pool()

    def _initialize_pool(self):
        if self._explicit:
            self._pool = list(self._explicit)
        else:
            self._pool = [
                TextGenerator(
                    provider,
                    default_max_tokens=self.config.default_max_tokens,
                    default_temperature=self.config.default_temperature,
                )
                for provider in self.config.providers
            ]
        logger.info(f"[TextGeneratorPool] Initialized with {len(self._pool)} providers")

    def next(self) -> TextGenerator:
        """Return the next generator in round-robin order."""
        with self._lock:
            generator = self._pool[self._index]
            self._index = (self._index + 1) % len(self._pool)
        return generator

    def size(self) -> int:
        return len(self._pool)

    def reset(self):
        """Rebuild all generators and restart the rotation."""
        with self._lock:
            self._initialize_pool()
            self._index = 0

    async def generate(self, prompt: str, format: ResponseFormat = "text") -> str:
        return await self.next().generate(prompt, format)

    def get_statistics(self) -> Dict:
        """Get usage statistics"""
        stats = {}
        for generator in self._pool:
            stats[generator.name] = {
                "total_requests": generator.request_count,
                "total_errors": generator.error_count,
                "last_used": generator.last_used,
            }
        return stats
