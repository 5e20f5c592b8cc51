from datetime import datetime, timedelta, timezone

import pytest

from echo_brain.adapters.tokens_approx import ApproxTokenCounter
from echo_brain.domain.errors import GenerationError
from echo_brain.domain.models import Message, MemoryObject, ScoredMemory
from echo_brain.ports.llm import LLMResponse
from echo_brain.use_cases.budget import Budget
from echo_brain.use_cases.retry import RetryPolicy
from echo_brain.use_cases.synthesizer import (
    NO_INFO_ANSWER,
    SYSTEM_PROMPT,
    AnswerSynthesizer,
    _user_prompt,
    build_timeline,
    uncertainty_note,
)

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)
FAST = RetryPolicy(attempts=2, base_delay_s=0.0, jitter_s=0.0)


class RecordingLLM:
    def __init__(self, text="ok"):
        self.text = text
        self.calls = []

    def generate(self, messages, *, max_output_tokens):
        self.calls.append(list(messages))
        return LLMResponse(text=self.text)


class CharCounter:
    """Один токен на символ: удобно проверять бюджет точно."""

    def count_text(self, text):
        return len(text or "")

    def count_messages(self, messages):
        return sum(1 + self.count_text(m.content) for m in messages)


class DownLLM:
    def __init__(self):
        self.calls = 0

    def generate(self, messages, *, max_output_tokens):
        self.calls += 1
        raise GenerationError("model is down")


def sm(mid, score, content, minutes=0):
    m = MemoryObject(
        id=mid,
        user_id="u1",
        content=content,
        embedding=(1.0,),
        source_type="note",
        content_hash="h",
        source_title=f"title {mid}",
        created_at=T0 + timedelta(minutes=minutes),
    )
    return ScoredMemory(memory=m, score=score)


def _synth(llm, budget=None):
    return AnswerSynthesizer(
        llm=llm,
        counter=ApproxTokenCounter(),
        budget=budget or Budget(max_context_tokens=3000, reserve_output_tokens=400),
        retry=FAST,
    )


def test_no_candidates_gives_no_info_without_llm_call():
    llm = RecordingLLM()
    ans = _synth(llm).synthesize("where are my keys?", [], user_id="u1")
    assert ans.answer_text == NO_INFO_ANSWER
    assert ans.cited_memory_ids == ()
    assert ans.confidence == 0.0
    assert ans.uncertainty_notes
    assert llm.calls == []


def test_all_candidates_fit_and_are_cited_in_score_order():
    llm = RecordingLLM("Your keys are in the blue bowl.")
    cands = [sm("b", 0.7, "keys sometimes on the desk"), sm("a", 0.9, "keys go in the blue bowl")]
    ans = _synth(llm).synthesize("where are my keys?", cands, user_id="u1")

    assert ans.answer_text == "Your keys are in the blue bowl."
    assert ans.cited_memory_ids == ("a", "b")
    assert [c.source_title for c in ans.citations] == ["title a", "title b"]
    assert ans.confidence == pytest.approx(0.8)
    assert ans.uncertainty_notes is None

    prompt = llm.calls[0][-1].content
    assert prompt.index("[Memory 1]") < prompt.index("keys go in the blue bowl") < prompt.index("[Memory 2]")
    assert "Question: where are my keys?" in prompt


def test_budget_drops_lowest_scored_candidates():
    counter = ApproxTokenCounter()
    base = counter.count_messages([
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content=_user_prompt("q", "")),
    ])
    # места примерно на один блок из ~270 символов
    budget = Budget(max_context_tokens=base + 100 + 400 + 32, reserve_output_tokens=400)
    cands = [sm(f"m{i}", 0.9 - i * 0.1, "x" * 200) for i in range(4)]

    llm = RecordingLLM()
    ans = _synth(llm, budget).synthesize("q", cands, user_id="u1")

    assert 1 <= len(ans.cited_memory_ids) < 4
    assert list(ans.cited_memory_ids) == [f"m{i}" for i in range(len(ans.cited_memory_ids))]


def test_tiny_budget_keeps_top_candidate_truncated_to_fit():
    counter = CharCounter()
    budget = Budget(max_context_tokens=1200, reserve_output_tokens=100)
    llm = RecordingLLM()
    cands = [sm("low", 0.4, "y" * 5000), sm("top", 0.8, "z" * 5000)]
    ans = AnswerSynthesizer(llm=llm, counter=counter, budget=budget, retry=FAST).synthesize("q", cands, user_id="u1")

    assert ans.cited_memory_ids == ("top",)
    assert ans.confidence == pytest.approx(0.8)
    sent = llm.calls[0]
    assert counter.count_messages(sent) <= budget.max_input_tokens
    prompt = sent[-1].content
    assert "z" * 100 in prompt
    assert "y" * 10 not in prompt


def test_budget_without_room_for_any_block_gives_no_info():
    llm = RecordingLLM()
    budget = Budget(max_context_tokens=0, reserve_output_tokens=0)
    ans = _synth(llm, budget).synthesize("q", [sm("top", 0.8, "z" * 1000)], user_id="u1")
    assert ans.answer_text == NO_INFO_ANSWER
    assert llm.calls == []


def test_generation_failure_propagates_after_retries():
    llm = DownLLM()
    with pytest.raises(GenerationError):
        _synth(llm).synthesize("q", [sm("a", 0.9, "text")], user_id="u1")
    assert llm.calls == 2


def test_uncertainty_bands():
    assert uncertainty_note(0.1).startswith("I found very limited")
    assert uncertainty_note(0.45).startswith("I found some relevant")
    assert uncertainty_note(0.6) is None


def test_scripted_llm_answer_is_passed_through():
    from echo_brain.adapters.llm_mock import ScriptedMockLLM

    llm = ScriptedMockLLM(rules={"blue bowl": "They are in the blue bowl."})
    ans = _synth(llm).synthesize("keys?", [sm("a", 0.9, "keys go in the blue bowl")], user_id="u1")
    assert ans.answer_text == "They are in the blue bowl."


def test_suggested_actions_follow_citations_and_timeline_access():
    ans = _synth(RecordingLLM()).synthesize("keys?", [sm("a", 0.9, "keys in bowl")], user_id="u1")
    labels = [s.label for s in ans.suggested_actions]
    assert labels == ["Ask follow-up", "View timeline", "Revisit sources"]
    assert ans.suggested_actions[2].payload == {"memory_ids": ["a"]}
    assert ans.timeline is None

    ans = _synth(RecordingLLM()).synthesize("keys?", [], user_id="u1", timeline_allowed=False)
    assert [s.label for s in ans.suggested_actions] == ["Ask follow-up"]


def test_timeline_orders_memories_and_marks_first_encounters():
    def concept_mem(mid, minutes, concepts):
        base = sm(mid, 0.9, f"text {mid}", minutes=minutes).memory
        return MemoryObject(**{**base.__dict__, "key_concepts": concepts, "summary": f"summary {mid}"})

    memories = [
        concept_mem("late", 30, ("rust", "ownership")),
        concept_mem("early", 0, ("rust",)),
        concept_mem("other", 10, ("baking",)),
        concept_mem("bare", 20, ()),
    ]
    entries = build_timeline(memories)
    assert [e.memory_id for e in entries] == ["early", "other", "bare", "late"]
    assert [e.role for e in entries] == ["first_encounter", "first_encounter", "first_encounter", "refinement"]
    assert entries[0].description == "summary early"

    cands = [ScoredMemory(memory=m, score=0.9) for m in memories]
    ans = _synth(RecordingLLM()).synthesize("rust?", cands, user_id="u1", timeline=True)
    assert ans.timeline is not None
    assert {e.memory_id for e in ans.timeline} == set(ans.cited_memory_ids)
    assert "View timeline" not in [s.label for s in ans.suggested_actions]
