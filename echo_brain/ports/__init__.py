from .embeddings import Embedder
from .fetcher import ExtractedPage, FetchedPage, HtmlExtractor, PageFetcher
from .llm import LLMClient, LLMResponse, LLMUsage
from .memory_store import MemoryStore
from .pdf import PdfDocument, PdfTextExtractor
from .plans import PlanResolver
from .tokens import TokenCounter
from .usage_store import UsageStore

__all__ = [
    "Embedder",
    "ExtractedPage",
    "FetchedPage",
    "HtmlExtractor",
    "PageFetcher",
    "LLMClient",
    "LLMResponse",
    "LLMUsage",
    "MemoryStore",
    "PdfDocument",
    "PdfTextExtractor",
    "PlanResolver",
    "TokenCounter",
    "UsageStore",
]
