from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from echo_brain.app.errors import describe_error
from echo_brain.app.settings import AppSettings
from echo_brain.app.wiring import build_bundle
from echo_brain.domain.errors import BrainError
from echo_brain.domain.models import AnswerObject, IngestOptions, MemoryObject, TimelineEntry

logging.basicConfig(level=logging.INFO, format="%(message)s")
log = logging.getLogger("echo_brain.api")

app = FastAPI(title="echo_brain")
settings = AppSettings.from_env()


class IngestRequest(BaseModel):
    user_id: str
    content: str
    source_type: Literal["note", "web", "pdf"] = "note"
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    source_author: Optional[str] = None


class QueryRequest(BaseModel):
    user_id: str
    query: str
    timeline: bool = False


def _raise_http(exc: BrainError) -> None:
    view = describe_error(exc)
    log.info(json.dumps({"event": "error", "kind": view.kind, "status": view.status, "detail": str(exc)}, ensure_ascii=False))
    raise HTTPException(status_code=view.status, detail={"kind": view.kind, "message": view.message}) from exc


def m2d(m: MemoryObject) -> Dict[str, Any]:
    return {
        "id": m.id,
        "user_id": m.user_id,
        "content": m.content,
        "source_type": m.source_type,
        "source_url": m.source_url,
        "source_title": m.source_title,
        "source_author": m.source_author,
        "summary": m.summary,
        "key_concepts": list(m.key_concepts),
        "content_hash": m.content_hash,
        "created_at": m.created_at.isoformat(),
    }


def t2d(t: TimelineEntry) -> Dict[str, Any]:
    return {
        "memory_id": t.memory_id,
        "date": t.date.isoformat(),
        "role": t.role,
        "description": t.description,
    }


def a2d(a: AnswerObject, *, confidence_detail: bool = True) -> Dict[str, Any]:
    """confidence_detail=False (тариф без детализации): без числовых score и confidence."""
    out: Dict[str, Any] = {
        "id": a.id,
        "query": a.query,
        "answer": a.answer_text,
        "cited_memory_ids": list(a.cited_memory_ids),
        "citations": [
            {
                "memory_id": c.memory_id,
                "source_type": c.source_type,
                "source_title": c.source_title,
                "source_url": c.source_url,
                "snippet": c.snippet,
            }
            for c in a.citations
        ],
        "uncertainty_notes": a.uncertainty_notes,
        "suggested_actions": [
            {"label": s.label, "action_type": s.action_type, "payload": dict(s.payload)}
            for s in a.suggested_actions
        ],
        "created_at": a.created_at.isoformat(),
    }
    if a.timeline is not None:
        out["timeline"] = [t2d(t) for t in a.timeline]
    if confidence_detail:
        out["confidence"] = a.confidence
        for c, view in zip(a.citations, out["citations"]):
            view["score"] = round(c.score, 4)
    return out


@app.post("/memories")
def ingest(req: IngestRequest):
    if req.source_type == "pdf":
        raise HTTPException(
            status_code=400,
            detail={"kind": "invalid_input", "message": "Upload PDF files to /memories/pdf as multipart form data."},
        )
    brain = build_bundle(settings).brain
    opts = IngestOptions(source_url=req.source_url, source_title=req.source_title, source_author=req.source_author)
    try:
        memory = brain.ingest_memory(req.user_id, req.content, req.source_type, opts)
    except BrainError as e:
        _raise_http(e)
    return m2d(memory)


@app.post("/memories/pdf")
async def ingest_pdf(
    user_id: str = Form(...),
    source_title: Optional[str] = Form(default=None),
    source_author: Optional[str] = Form(default=None),
    file: UploadFile = File(...),
):
    data = await file.read()
    brain = build_bundle(settings).brain
    opts = IngestOptions(source_title=source_title or file.filename, source_author=source_author)
    try:
        memory = brain.ingest_memory(user_id, data, "pdf", opts)
    except BrainError as e:
        _raise_http(e)
    return m2d(memory)


@app.post("/query")
def query(req: QueryRequest):
    bundle = build_bundle(settings)
    try:
        answer = bundle.brain.query_brain(req.user_id, req.query, timeline=req.timeline)
        plan = bundle.gate.plan_for(req.user_id)
    except BrainError as e:
        _raise_http(e)
    return a2d(answer, confidence_detail=plan.answer_confidence_detail)


@app.get("/memories/{user_id}")
def list_memories(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    brain = build_bundle(settings).brain
    try:
        mems = brain.list_memories(user_id, limit)
    except BrainError as e:
        _raise_http(e)
    return [m2d(m) for m in mems]


@app.get("/timeline/{user_id}")
def timeline(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    brain = build_bundle(settings).brain
    try:
        entries = brain.timeline(user_id, limit)
    except BrainError as e:
        _raise_http(e)
    return [t2d(t) for t in entries]
