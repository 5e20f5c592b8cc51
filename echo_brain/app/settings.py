from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except Exception:
        return default


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v


def _env_choice(name: str, default: str, allowed: set[str]) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    val = v.strip().lower()
    return val if val in allowed else default


def _env_overrides(name: str) -> Dict[str, str]:
    """EB_PLAN_OVERRIDES="alice:pro, bob:student_pro" -> {"alice": "pro", "bob": "student_pro"}"""
    v = os.getenv(name) or ""
    out: Dict[str, str] = {}
    for part in v.split(","):
        uid, sep, tier = part.partition(":")
        if sep and uid.strip() and tier.strip():
            out[uid.strip()] = tier.strip().lower()
    return out


@dataclass(frozen=True)
class BrainSettings:
    top_k: int = 8
    min_score: float = 0.2
    max_context_tokens: int = 3000
    reserve_output_tokens: int = 400
    max_content_chars: int = 50_000
    oversize_policy: str = "truncate"  # truncate | reject
    intelligence: str = "llm"          # llm | heuristic


@dataclass(frozen=True)
class BackendSettings:
    embedder_backend: str = "hash"     # hash | sbert | ollama
    llm_backend: str = "mock"          # mock | ollama
    tokenizer_backend: str = "approx"  # approx | tiktoken
    store_backend: str = "json"        # json | sqlite
    usage_backend: str = "memory"      # memory | sqlite

    data_dir: str = "./data"

    ollama_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_embed_model: str = "nomic-embed-text"
    embed_dim: int = 768
    sbert_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    embed_timeout_s: float = 30.0
    generate_timeout_s: float = 120.0
    fetch_timeout_s: float = 15.0


@dataclass(frozen=True)
class RetrySettings:
    attempts: int = 3
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0


@dataclass(frozen=True)
class PlanSettings:
    default_tier: str = "free"
    overrides: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppSettings:
    brain: BrainSettings = BrainSettings()
    backends: BackendSettings = BackendSettings()
    retry: RetrySettings = RetrySettings()
    plans: PlanSettings = PlanSettings()

    @staticmethod
    def from_env() -> "AppSettings":
        brain = BrainSettings(
            top_k=_env_int("EB_TOP_K", BrainSettings.top_k),
            min_score=_env_float("EB_MIN_SCORE", BrainSettings.min_score),
            max_context_tokens=_env_int("EB_MAX_CONTEXT", BrainSettings.max_context_tokens),
            reserve_output_tokens=_env_int("EB_RESERVE_OUTPUT", BrainSettings.reserve_output_tokens),
            max_content_chars=_env_int("EB_MAX_CONTENT_CHARS", BrainSettings.max_content_chars),
            oversize_policy=_env_choice("EB_OVERSIZE", BrainSettings.oversize_policy, {"truncate", "reject"}),
            intelligence=_env_choice("EB_INTELLIGENCE", BrainSettings.intelligence, {"llm", "heuristic"}),
        )

        backends = BackendSettings(
            embedder_backend=_env_choice("EB_EMBEDDER", BackendSettings.embedder_backend, {"hash", "sbert", "ollama"}),
            llm_backend=_env_choice("EB_LLM", BackendSettings.llm_backend, {"mock", "ollama"}),
            tokenizer_backend=_env_choice("EB_TOKENIZER", BackendSettings.tokenizer_backend, {"approx", "tiktoken"}),
            store_backend=_env_choice("EB_STORE", BackendSettings.store_backend, {"json", "sqlite"}),
            usage_backend=_env_choice("EB_USAGE", BackendSettings.usage_backend, {"memory", "sqlite"}),

            data_dir=_env_str("EB_DATA_DIR", BackendSettings.data_dir),

            ollama_url=_env_str("EB_OLLAMA_URL", BackendSettings.ollama_url),
            ollama_model=_env_str("EB_OLLAMA_MODEL", BackendSettings.ollama_model),
            ollama_embed_model=_env_str("EB_OLLAMA_EMBED_MODEL", BackendSettings.ollama_embed_model),
            embed_dim=_env_int("EB_EMBED_DIM", BackendSettings.embed_dim),
            sbert_model=_env_str("EB_SBERT_MODEL", BackendSettings.sbert_model),

            embed_timeout_s=_env_float("EB_EMBED_TIMEOUT", BackendSettings.embed_timeout_s),
            generate_timeout_s=_env_float("EB_GENERATE_TIMEOUT", BackendSettings.generate_timeout_s),
            fetch_timeout_s=_env_float("EB_FETCH_TIMEOUT", BackendSettings.fetch_timeout_s),
        )

        retry = RetrySettings(
            attempts=_env_int("EB_RETRY_ATTEMPTS", RetrySettings.attempts),
            base_delay_s=_env_float("EB_RETRY_DELAY", RetrySettings.base_delay_s),
            max_delay_s=_env_float("EB_RETRY_MAX_DELAY", RetrySettings.max_delay_s),
        )

        plans = PlanSettings(
            default_tier=_env_choice("EB_DEFAULT_TIER", PlanSettings.default_tier, {"free", "pro", "student_pro"}),
            overrides=_env_overrides("EB_PLAN_OVERRIDES"),
        )

        return AppSettings(brain=brain, backends=backends, retry=retry, plans=plans)
