from io import BytesIO

import pytest
import requests
from pypdf import PdfWriter

from echo_brain.adapters.embed_hash import HashingEmbedder
from echo_brain.adapters.embed_ollama import OllamaEmbedder
from echo_brain.adapters.llm_ollama import OllamaLLMClient
from echo_brain.adapters.pdf_pypdf import PypdfTextExtractor
from echo_brain.domain.errors import EmbeddingServiceError, ExtractionError, GenerationError
from echo_brain.domain.models import Message
from echo_brain.domain.similarity import cosine


class _Resp:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status
        self.content = b"x"

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class _Session:
    def __init__(self, resp=None, exc=None):
        self.resp = resp
        self.exc = exc
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        if self.exc is not None:
            raise self.exc
        return self.resp


def test_hashing_embedder_is_deterministic_and_normalized():
    e = HashingEmbedder()
    a, b, c = e.embed(["Coffee beans from Ethiopia", "coffee BEANS from ethiopia", "tax return deadline"])
    assert a == b
    assert len(a) == e.dim
    assert cosine(a, a) == pytest.approx(1.0)
    assert cosine(a, c) < 0.5
    assert e.embed([""])[0] == [0.0] * e.dim


def test_ollama_embedder_parses_and_wraps_failures():
    s = _Session(resp=_Resp({"embeddings": [[0.5, 0.5]]}))
    e = OllamaEmbedder(base_url="http://ollama:11434/", dimension=2, session=s)
    assert e.embed(["hi"]) == [[0.5, 0.5]]
    assert s.posts[0][0] == "http://ollama:11434/api/embed"

    with pytest.raises(EmbeddingServiceError):
        OllamaEmbedder(session=_Session(exc=requests.ConnectionError("refused"))).embed(["hi"])
    with pytest.raises(EmbeddingServiceError):
        OllamaEmbedder(session=_Session(resp=_Resp({}, status=500))).embed(["hi"])


def test_ollama_llm_reads_message_and_rejects_empty():
    s = _Session(resp=_Resp({"message": {"content": " hello "}, "eval_count": 2}))
    out = OllamaLLMClient(session=s).generate([Message(role="user", content="q")], max_output_tokens=50)
    assert out.text == "hello"
    assert s.posts[0][1]["options"]["num_predict"] == 50

    with pytest.raises(GenerationError):
        OllamaLLMClient(session=_Session(resp=_Resp({"message": {"content": ""}}))).generate([], max_output_tokens=5)
    with pytest.raises(GenerationError):
        OllamaLLMClient(session=_Session(exc=requests.Timeout("slow"))).generate([], max_output_tokens=5)


def test_pypdf_extractor_reads_metadata_and_rejects_garbage():
    w = PdfWriter()
    w.add_blank_page(width=200, height=200)
    w.add_metadata({"/Title": "Blank paper", "/Author": "Nobody"})
    buf = BytesIO()
    w.write(buf)

    doc = PypdfTextExtractor().extract(buf.getvalue())
    assert len(doc.pages) == 1
    assert doc.title == "Blank paper"
    assert doc.author == "Nobody"

    with pytest.raises(ExtractionError):
        PypdfTextExtractor().extract(b"definitely not a pdf")
    with pytest.raises(ExtractionError):
        PypdfTextExtractor().extract(b"")


def test_ollama_embedder_rejects_malformed_vectors():
    with pytest.raises(EmbeddingServiceError):
        OllamaEmbedder(session=_Session(resp=_Resp({"embeddings": [0.1, 0.2]}))).embed(["hi"])
    with pytest.raises(EmbeddingServiceError):
        OllamaEmbedder(session=_Session(resp=_Resp({"embeddings": [["a", None]]}))).embed(["hi"])
