from .embed_hash import HashingEmbedder
from .html_extract import HtmlTextExtractor
from .llm_mock import EchoMockLLM, ScriptedMockLLM
from .tokens_approx import ApproxTokenCounter
from .memory_store_json import JsonMemoryStore
from .memory_store_sqlite import SqliteMemoryStore
from .usage_store_memory import InMemoryUsageStore
from .usage_store_sqlite import SqliteUsageStore
from .plans_static import StaticPlanResolver

__all__ = [
    "HashingEmbedder",
    "HtmlTextExtractor",
    "EchoMockLLM", "ScriptedMockLLM",
    "ApproxTokenCounter",
    "JsonMemoryStore",
    "SqliteMemoryStore",
    "InMemoryUsageStore",
    "SqliteUsageStore",
    "StaticPlanResolver",
]
