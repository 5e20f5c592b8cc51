from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional, Union

from echo_brain.app.errors import describe_error
from echo_brain.app.settings import AppSettings
from echo_brain.app.wiring import build_bundle
from echo_brain.domain.errors import BrainError
from echo_brain.domain.models import AnswerObject, IngestOptions, MemoryObject, TimelineEntry
from echo_brain.use_cases.brain import Brain


def _print_memory(m: MemoryObject) -> None:
    title = m.source_title or m.source_url or "-"
    print(f"  {m.id} | {m.source_type} | {title} | {m.created_at:%Y-%m-%d %H:%M} | {len(m.content)} chars")


def _print_timeline_entry(t: TimelineEntry) -> None:
    print(f"  {t.date:%Y-%m-%d} {t.role:<15} {t.description}")


def _print_answer(a: AnswerObject, debug: bool) -> None:
    print(f"brain> {a.answer_text}")
    if a.uncertainty_notes:
        print(f"       ({a.uncertainty_notes})")
    for i, c in enumerate(a.citations, start=1):
        print(f"  [{i}] {c.source_title or c.source_url or c.source_type} (score={c.score:.2f})")
    for t in a.timeline or ():
        _print_timeline_entry(t)
    if a.suggested_actions:
        print("  next: " + " | ".join(s.label for s in a.suggested_actions))
    if debug:
        print("debug> " + json.dumps({
            "answer_id": a.id,
            "cited_memory_ids": list(a.cited_memory_ids),
            "confidence": a.confidence,
        }, ensure_ascii=False, indent=2))
    print()


def _pdf_bytes(path: str) -> bytes:
    return Path(path).expanduser().read_bytes()


def _ingest(brain: Brain, uid: str, value: str, source_type: str, opts: Optional[IngestOptions] = None) -> MemoryObject:
    """pdf: путь читается здесь, в ядро уходят только байты."""
    content: Union[str, bytes] = _pdf_bytes(value) if source_type == "pdf" else value
    return brain.ingest_memory(uid, content, source_type, opts)


def _options_for(source_type: str, value: str, args: argparse.Namespace) -> IngestOptions:
    """--url описывает только web-источник, заметке и PDF он не приписывается."""
    return IngestOptions(
        source_url=value if source_type == "web" else None,
        source_title=args.title,
        source_author=args.author,
    )


def _ask(brain: Brain, uid: str, query: str, debug: bool, timeline: bool = False) -> bool:
    try:
        answer = brain.query_brain(uid, query, timeline=timeline)
    except BrainError as e:
        print(f"brain> {describe_error(e).message}\n")
        return False
    _print_answer(answer, debug)
    return True


def main() -> int:
    parser = argparse.ArgumentParser(prog="echo-brain")
    parser.add_argument("--uid", default="default")
    parser.add_argument("--debug", action="store_true")

    parser.add_argument("--data-dir", default=None, help="Override data dir")
    parser.add_argument("--store", choices=["json", "sqlite"], default=None)
    parser.add_argument("--tier", choices=["free", "pro", "student_pro"], default=None)
    parser.add_argument("--top-k", type=int, default=None)
    parser.add_argument("--min-score", type=float, default=None)

    parser.add_argument("--note", default=None, help="Ingest a text note")
    parser.add_argument("--url", default=None, help="Ingest a web page")
    parser.add_argument("--pdf", default=None, help="Ingest a PDF file")
    parser.add_argument("--title", default=None)
    parser.add_argument("--author", default=None)

    parser.add_argument("--ask", default=None, help="Ask one question and exit")
    parser.add_argument("--timeline", action="store_true", help="With --ask: add a timeline; alone: show it")
    parser.add_argument("--list", action="store_true", help="List recent memories")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="%(message)s")

    settings = AppSettings.from_env()

    backends = settings.backends
    if args.data_dir is not None:
        backends = replace(backends, data_dir=args.data_dir)
    if args.store is not None:
        backends = replace(backends, store_backend=args.store)

    brain_cfg = settings.brain
    if args.top_k is not None:
        brain_cfg = replace(brain_cfg, top_k=args.top_k)
    if args.min_score is not None:
        brain_cfg = replace(brain_cfg, min_score=args.min_score)

    plans = settings.plans
    if args.tier is not None:
        plans = replace(plans, overrides={**plans.overrides, args.uid: args.tier})

    settings = replace(settings, backends=backends, brain=brain_cfg, plans=plans)

    bundle = build_bundle(settings)
    brain = bundle.brain
    sources = [(t, v) for t, v in (("note", args.note), ("web", args.url), ("pdf", args.pdf)) if v is not None]
    if sources:
        failed = 0
        for source_type, value in sources:
            try:
                m = _ingest(brain, args.uid, value, source_type, _options_for(source_type, value, args))
            except BrainError as e:
                print(f"ingest {source_type}: {describe_error(e).message}")
                failed += 1
                continue
            except OSError as e:
                print(f"ingest {source_type}: cannot read {value}: {e.strerror or e}")
                failed += 1
                continue
            print(f"Ingested {source_type} memory {m.id} ({len(m.content)} chars)")
        return 1 if failed else 0

    if args.list:
        try:
            mems = brain.list_memories(args.uid, 50)
        except BrainError as e:
            print(describe_error(e).message)
            return 1
        if not mems:
            print("(no memories)")
        for m in mems:
            _print_memory(m)
        return 0

    if args.ask is not None:
        return 0 if _ask(brain, args.uid, args.ask, args.debug, args.timeline) else 1

    if args.timeline:
        try:
            entries = brain.timeline(args.uid)
        except BrainError as e:
            print(describe_error(e).message)
            return 1
        if not entries:
            print("(no memories)")
        for t in entries:
            _print_timeline_entry(t)
        return 0

    print(f"User: {args.uid}")
    print("Type /exit to quit.")
    print("Commands: /note <text> | /url <link> | /pdf <path> | /list\n")

    while True:
        user_text = input("you> ").strip()
        if not user_text:
            continue
        if user_text == "/exit":
            break

        if user_text == "/list":
            try:
                for m in brain.list_memories(args.uid, 20):
                    _print_memory(m)
            except BrainError as e:
                print(f"brain> {describe_error(e).message}")
            print()
            continue

        cmd, _, rest = user_text.partition(" ")
        if cmd in ("/note", "/url", "/pdf") and rest.strip():
            source_type = {"/note": "note", "/url": "web", "/pdf": "pdf"}[cmd]
            try:
                m = _ingest(brain, args.uid, rest.strip(), source_type)
            except BrainError as e:
                print(f"brain> {describe_error(e).message}\n")
                continue
            except OSError as e:
                print(f"brain> cannot read {rest.strip()}: {e.strerror or e}\n")
                continue
            print(f"brain> remembered ({m.id})\n")
            continue

        _ask(brain, args.uid, user_text, args.debug)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
