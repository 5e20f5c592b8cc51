from __future__ import annotations

import os
from dataclasses import astuple, dataclass
from threading import Lock
from typing import Any, Dict, Tuple

from echo_brain.app.settings import AppSettings

from echo_brain.ports.embeddings import Embedder
from echo_brain.ports.llm import LLMClient
from echo_brain.ports.memory_store import MemoryStore
from echo_brain.ports.tokens import TokenCounter
from echo_brain.ports.usage_store import UsageStore

from echo_brain.adapters.fetch_requests import RequestsPageFetcher
from echo_brain.adapters.html_extract import HtmlTextExtractor
from echo_brain.adapters.pdf_pypdf import PypdfTextExtractor
from echo_brain.adapters.plans_static import StaticPlanResolver

from echo_brain.use_cases.brain import Brain
from echo_brain.use_cases.budget import Budget
from echo_brain.use_cases.embedding import EmbeddingGenerator
from echo_brain.use_cases.entitlements import EntitlementGate
from echo_brain.use_cases.intelligence import IntelligenceExtractor
from echo_brain.use_cases.normalizer import ContentNormalizer
from echo_brain.use_cases.retriever import Retriever
from echo_brain.use_cases.retry import RetryPolicy
from echo_brain.use_cases.synthesizer import AnswerSynthesizer


@dataclass(frozen=True)
class BrainBundle:
    brain: Brain
    store: MemoryStore
    gate: EntitlementGate
    usage: UsageStore


# -----------------------
# Internal shared cache
# -----------------------
_cache_lock = Lock()
_shared: Dict[Tuple[Any, ...], BrainBundle] = {}


def _settings_key(s: AppSettings) -> Tuple[Any, ...]:
    return (
        astuple(s.brain),
        astuple(s.backends),
        astuple(s.retry),
        s.plans.default_tier,
        tuple(sorted(s.plans.overrides.items())),
    )


def _build_embedder(settings: AppSettings) -> Embedder:
    b = settings.backends
    if b.embedder_backend == "sbert":
        from echo_brain.adapters.embed_sbert import SentenceTransformerEmbedder
        return SentenceTransformerEmbedder(model_name=b.sbert_model)
    if b.embedder_backend == "ollama":
        from echo_brain.adapters.embed_ollama import OllamaEmbedder
        return OllamaEmbedder(
            base_url=b.ollama_url,
            model=b.ollama_embed_model,
            dimension=b.embed_dim,
            timeout_s=b.embed_timeout_s,
        )
    from echo_brain.adapters.embed_hash import HashingEmbedder
    return HashingEmbedder()


def _build_llm(settings: AppSettings) -> LLMClient:
    b = settings.backends
    if b.llm_backend == "ollama":
        from echo_brain.adapters.llm_ollama import OllamaLLMClient
        return OllamaLLMClient(base_url=b.ollama_url, model=b.ollama_model, timeout_s=b.generate_timeout_s)
    from echo_brain.adapters.llm_mock import EchoMockLLM
    return EchoMockLLM()


def _build_counter(settings: AppSettings) -> TokenCounter:
    if settings.backends.tokenizer_backend == "tiktoken":
        from echo_brain.adapters.tokens_tiktoken import TiktokenTokenCounter
        return TiktokenTokenCounter()
    from echo_brain.adapters.tokens_approx import ApproxTokenCounter
    return ApproxTokenCounter()


def _build_store(settings: AppSettings) -> MemoryStore:
    b = settings.backends
    if b.store_backend == "sqlite":
        from echo_brain.adapters.memory_store_sqlite import SqliteMemoryStore
        return SqliteMemoryStore(os.path.join(b.data_dir, "memories.sqlite3"))
    from echo_brain.adapters.memory_store_json import JsonMemoryStore
    return JsonMemoryStore(os.path.join(b.data_dir, "memories.json"))


def _build_usage(settings: AppSettings) -> UsageStore:
    b = settings.backends
    if b.usage_backend == "sqlite":
        from echo_brain.adapters.usage_store_sqlite import SqliteUsageStore
        return SqliteUsageStore(os.path.join(b.data_dir, "usage.sqlite3"))
    from echo_brain.adapters.usage_store_memory import InMemoryUsageStore
    return InMemoryUsageStore()


def _build(settings: AppSettings) -> BrainBundle:
    retry = RetryPolicy(
        attempts=settings.retry.attempts,
        base_delay_s=settings.retry.base_delay_s,
        max_delay_s=settings.retry.max_delay_s,
    )

    usage = _build_usage(settings)
    gate = EntitlementGate(
        usage=usage,
        plans=StaticPlanResolver(
            default_tier=settings.plans.default_tier,
            overrides=dict(settings.plans.overrides),
        ),
    )

    normalizer = ContentNormalizer(
        fetcher=RequestsPageFetcher(timeout_s=settings.backends.fetch_timeout_s),
        pdf=PypdfTextExtractor(),
        html=HtmlTextExtractor(),
        max_content_chars=settings.brain.max_content_chars,
        oversize_policy="reject" if settings.brain.oversize_policy == "reject" else "truncate",
    )

    store = _build_store(settings)
    llm = _build_llm(settings)

    synthesizer = AnswerSynthesizer(
        llm=llm,
        counter=_build_counter(settings),
        budget=Budget(
            max_context_tokens=settings.brain.max_context_tokens,
            reserve_output_tokens=settings.brain.reserve_output_tokens,
        ),
        retry=retry,
    )

    brain = Brain(
        gate=gate,
        normalizer=normalizer,
        embeddings=EmbeddingGenerator(embedder=_build_embedder(settings), retry=retry),
        store=store,
        retriever=Retriever(store=store, top_k=settings.brain.top_k, min_score=settings.brain.min_score),
        synthesizer=synthesizer,
        intelligence=IntelligenceExtractor(llm=llm if settings.brain.intelligence == "llm" else None),
    )
    return BrainBundle(brain=brain, store=store, gate=gate, usage=usage)


def build_bundle(settings: AppSettings) -> BrainBundle:
    key = _settings_key(settings)

    with _cache_lock:
        bundle = _shared.get(key)
        if bundle is None:
            bundle = _build(settings)
            _shared[key] = bundle
    return bundle
