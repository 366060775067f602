import asyncio
from types import SimpleNamespace

import pytest

from conftest import FakeGenerator
from deepsearch.core.llm.generator_pool import TextGeneratorPool
from deepsearch.core.llm.text_generator import TextGenerator
from deepsearch.models.config import (
    ConfigurationError, LLMPoolConfig, LLMProviderConfig, LLMProviderKind, load_config,
)


def _provider(kind=LLMProviderKind.OPENAI, model="gpt-4o-mini"):
    return LLMProviderConfig(kind=kind, api_key="test-key", model=model)


def test_round_robin_wraps_around():
    generators = [FakeGenerator(name=n) for n in ("a", "b", "c")]
    pool = TextGeneratorPool(LLMPoolConfig(), generators=generators)

    names = [pool.next().name for _ in range(7)]
    assert names == ["a", "b", "c", "a", "b", "c", "a"]
    assert pool.size() == 3


def test_reset_restarts_rotation():
    generators = [FakeGenerator(name=n) for n in ("a", "b")]
    pool = TextGeneratorPool(LLMPoolConfig(), generators=generators)
    pool.next()
    pool.reset()
    assert pool.next().name == "a"


def test_empty_pool_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        TextGeneratorPool(LLMPoolConfig(providers=[]))


def test_pool_builds_generators_from_providers():
    config = LLMPoolConfig(
        providers=[_provider(), _provider(LLMProviderKind.DEEPSEEK, "deepseek-chat")],
        default_max_tokens=512,
    )
    pool = TextGeneratorPool(config)
    first, second = pool.next(), pool.next()

    assert first.name == "openai/gpt-4o-mini"
    assert second.name == "deepseek/deepseek-chat"
    assert first.max_tokens == 512
    assert set(pool.get_statistics()) == {"openai/gpt-4o-mini", "deepseek/deepseek-chat"}


def test_pool_generate_uses_next_generator():
    a, b = FakeGenerator(default="from a", name="a"), FakeGenerator(default="from b", name="b")
    pool = TextGeneratorPool(LLMPoolConfig(), generators=[a, b])

    outputs = [asyncio.run(pool.generate("hello", "json")) for _ in range(3)]
    assert outputs == ["from a", "from b", "from a"]
    assert a.calls[0] == ("hello", "json")


def test_generator_failure_returns_empty_string(monkeypatch):
    generator = TextGenerator(_provider())

    async def boom(prompt, format):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(generator, "_call_provider", boom)

    assert asyncio.run(generator.generate("hello")) == ""
    assert generator.error_count == 1
    assert generator.request_count == 1


def test_generator_none_payload_becomes_empty_string(monkeypatch):
    generator = TextGenerator(_provider(), default_temperature=0.2)

    async def empty(prompt, format):
        return None

    monkeypatch.setattr(generator, "_call_provider", empty)

    assert asyncio.run(generator.generate("hello", "json")) == ""
    assert generator.temperature == 0.2
    assert generator.error_count == 0


def test_load_config_reads_keyed_providers(monkeypatch):
    for prefix in ("DEEPSEEK", "QWEN", "KIMI", "OPENAI", "ANTHROPIC", "GEMINI", "GROQ"):
        monkeypatch.delenv(f"{prefix}_API_KEY", raising=False)
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test")
    monkeypatch.setenv("DEEPSEEK_MODEL", "deepseek-reasoner")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    monkeypatch.setenv("GROQ_TEMPERATURE", "0.1")
    monkeypatch.setenv("SEARCH_ENGINE", "duckduckgo")
    monkeypatch.setenv("MAX_CONCURRENT_NODES", "2")

    config = load_config(env_file="/nonexistent/.env")

    kinds = [p.kind for p in config.llm_pool.providers]
    assert kinds == [LLMProviderKind.DEEPSEEK, LLMProviderKind.GROQ]
    assert config.llm_pool.providers[0].model == "deepseek-reasoner"
    assert config.llm_pool.providers[0].endpoint == "https://api.deepseek.com/v1"
    assert config.llm_pool.providers[1].temperature == 0.1
    assert config.search.search_engine.value == "duckduckgo"
    assert config.search.max_concurrent_nodes == 2


class _RecordingMessages:
    def __init__(self):
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(text="ok")])


def test_anthropic_system_prompt_only_for_json():
    generator = TextGenerator(_provider(LLMProviderKind.ANTHROPIC, "claude-3-5-sonnet-20241022"))
    messages = _RecordingMessages()
    generator._client = SimpleNamespace(messages=messages)

    assert asyncio.run(generator.generate("hello", "text")) == "ok"
    assert asyncio.run(generator.generate("hello", "json")) == "ok"

    text_request, json_request = messages.requests
    assert "system" not in text_request
    assert "JSON" in json_request["system"]
    assert json_request["messages"] == [{"role": "user", "content": "hello"}]
