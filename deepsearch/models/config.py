import os
from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
from dotenv import load_dotenv


class ConfigurationError(ValueError):
    """Raised when the system is configured in a way it cannot run with"""


class LLMProviderKind(str, Enum):
    """Supported text generation backends"""
    OPENAI = "openai"
    DEEPSEEK = "deepseek"
    QWEN = "qwen"
    KIMI = "kimi"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    GROQ = "groq"


# Kinds served through an OpenAI-compatible chat completions endpoint
OPENAI_COMPATIBLE_KINDS = {
    LLMProviderKind.OPENAI,
    LLMProviderKind.DEEPSEEK,
    LLMProviderKind.QWEN,
    LLMProviderKind.KIMI,
    LLMProviderKind.OPENROUTER,
}


class SearchEngineKind(str, Enum):
    """Search backends the web collaborator can target"""
    BING = "bing"
    DUCKDUCKGO = "duckduckgo"


class LLMProviderConfig(BaseModel):
    """One text generation backend"""
    kind: LLMProviderKind
    api_key: str
    endpoint: str = ""
    model: str
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)


class LLMPoolConfig(BaseModel):
    """Ordered set of providers the generator pool rotates across"""
    providers: List[LLMProviderConfig] = Field(default_factory=list)
    default_max_tokens: int = 2048
    default_temperature: float = 0.7


class SearchGraphConfig(BaseModel):
    """Search graph, resolver and web collaborator parameters"""
    search_engine: SearchEngineKind = SearchEngineKind.BING
    max_concurrency: int = Field(default=5, ge=1, le=20, description="Max concurrent page fetches per node")
    fetch_timeout: float = Field(default=10.0, gt=0, le=120.0, description="Timeout per page fetch job (seconds)")
    fetch_delay: float = Field(default=0.0, ge=0.0, le=10.0, description="Delay before each fetch job (seconds)")
    max_results: int = Field(default=5, ge=1, le=20, description="Max relevant pages kept per node")
    max_search_results: int = Field(default=10, ge=1, le=30, description="Max candidate links per search")
    max_content_per_page: int = Field(default=8000, ge=500, le=50000, description="Max chars of page text used in synthesis")
    cache_ttl: float = Field(default=3600.0, gt=0, description="URL cache time-to-live (seconds)")
    cache_max_entries: int = Field(default=512, ge=1)
    max_concurrent_nodes: int = Field(default=4, ge=1, le=32, description="Max nodes resolving at once")
    max_sessions: int = Field(default=4, ge=1, le=32, description="Max idle HTTP sessions kept by the pool")
    log_dir: Optional[str] = "logs"


class AppConfig(BaseModel):
    """Top-level configuration"""
    llm_pool: LLMPoolConfig = Field(default_factory=LLMPoolConfig)
    search: SearchGraphConfig = Field(default_factory=SearchGraphConfig)
    search_retention: float = Field(default=300.0, ge=0.0, description="Seconds a finished search stays pollable")


# (kind, env prefix, default model, default endpoint)
_ENV_PROVIDERS = [
    (LLMProviderKind.DEEPSEEK, "DEEPSEEK", "deepseek-chat", "https://api.deepseek.com/v1"),
    (LLMProviderKind.QWEN, "QWEN", "qwen-plus", "https://dashscope.aliyuncs.com/compatible-mode/v1"),
    (LLMProviderKind.KIMI, "KIMI", "moonshot-v1-8k", "https://api.moonshot.cn/v1"),
    (LLMProviderKind.OPENAI, "OPENAI", "gpt-4o-mini", ""),
    (LLMProviderKind.ANTHROPIC, "ANTHROPIC", "claude-3-5-sonnet-20241022", ""),
    (LLMProviderKind.GEMINI, "GEMINI", "gemini-1.5-flash", ""),
    (LLMProviderKind.GROQ, "GROQ", "llama-3.1-8b-instant", ""),
]


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Build the application config from environment variables (and a .env file).

    Providers are read from <PREFIX>_API_KEY / <PREFIX>_ENDPOINT / <PREFIX>_MODEL
    and skipped when no API key is set.
    """
    load_dotenv(env_file)

    providers = []
    for kind, prefix, default_model, default_endpoint in _ENV_PROVIDERS:
        api_key = os.getenv(f"{prefix}_API_KEY", "")
        if not api_key:
            continue
        providers.append(LLMProviderConfig(
            kind=kind,
            api_key=api_key,
            endpoint=os.getenv(f"{prefix}_ENDPOINT", default_endpoint),
            model=os.getenv(f"{prefix}_MODEL", default_model),
            max_tokens=_optional_int(f"{prefix}_MAX_TOKENS"),
            temperature=_optional_float(f"{prefix}_TEMPERATURE"),
        ))

    search = SearchGraphConfig(
        search_engine=SearchEngineKind(os.getenv("SEARCH_ENGINE", SearchEngineKind.BING.value)),
        max_concurrency=int(os.getenv("MAX_CONCURRENCY", "5")),
        fetch_timeout=float(os.getenv("FETCH_TIMEOUT", "10")),
        max_results=int(os.getenv("MAX_RESULTS", "5")),
        max_concurrent_nodes=int(os.getenv("MAX_CONCURRENT_NODES", "4")),
        cache_ttl=float(os.getenv("CACHE_TTL", "3600")),
        log_dir=os.getenv("LOG_DIR", "logs") or None,
    )

    return AppConfig(llm_pool=LLMPoolConfig(providers=providers), search=search, search_retention=float(os.getenv("SEARCH_RETENTION", "300")))
