import asyncio
import json

import pytest

from agentassist.models.coaching_models import TranscriptLine
from agentassist.models.knowledge_models import SearchResult
from agentassist.services.coaching_orchestrator import (
    CoachingOrchestrator,
    build_transcript_text,
)
from agentassist.services.llm_service import GenerationFailure

from conftest import VALID_COACHING, FakeLLMService


class FakeRetrieval:
    def __init__(self, results=None):
        self.results = results or []
        self.queries = []

    async def search(self, query, limit=3):
        self.queries.append((query, limit))
        return self.results[:limit]


def coaching_json(next_action):
    return json.dumps(dict(VALID_COACHING, nextAction=next_action))


def line(text, role="customer"):
    return TranscriptLine(role=role, text=text)


class Recorder:
    def __init__(self):
        self.results = []

    async def __call__(self, key, outcome):
        self.results.append((key, outcome))


def test_burst_of_events_triggers_single_call_with_full_transcript():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.05)
    lines = []
    recorder = Recorder()

    async def scenario():
        for text in ("hello", "my order", "is late"):
            lines.append(line(text))
            orchestrator.schedule("conv-1", lambda: list(lines), recorder)
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    assert len(llm.prompts) == 1
    assert "CUSTOMER: hello\nCUSTOMER: my order\nCUSTOMER: is late" in llm.prompts[0]
    assert len(recorder.results) == 1
    key, outcome = recorder.results[0]
    assert key == "conv-1"
    assert outcome.ok
    assert outcome.coaching.next_action == VALID_COACHING["nextAction"]


def test_late_result_is_discarded_in_favor_of_newer_schedule():
    llm = FakeLLMService(responses=[coaching_json("First"), coaching_json("Second")], delay=0.1)
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.01)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("voice-s1", lambda: [line("one")], recorder)
        await asyncio.sleep(0.05)
        orchestrator.schedule("voice-s1", lambda: [line("one"), line("two")], recorder)
        await asyncio.sleep(0.4)

    asyncio.run(scenario())

    assert len(llm.prompts) == 2
    assert [outcome.coaching.next_action for _, outcome in recorder.results] == ["Second"]


def test_keys_are_debounced_independently():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.02)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("conv-1", lambda: [line("a")], recorder)
        orchestrator.schedule("conv-2", lambda: [line("b")], recorder)
        await asyncio.sleep(0.15)

    asyncio.run(scenario())

    assert sorted(key for key, _ in recorder.results) == ["conv-1", "conv-2"]


def test_cancel_before_timer_fires_skips_generation():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.05)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("conv-1", lambda: [line("hi")], recorder)
        assert orchestrator.is_pending("conv-1")
        orchestrator.cancel("conv-1")
        assert not orchestrator.is_pending("conv-1")
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert llm.prompts == []
    assert recorder.results == []


def test_cancel_during_generation_discards_result():
    llm = FakeLLMService(delay=0.1)
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.01)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("voice-s1", lambda: [line("hi")], recorder)
        await asyncio.sleep(0.05)
        orchestrator.cancel("voice-s1")
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    assert len(llm.prompts) == 1
    assert recorder.results == []


def test_missing_transcript_at_fire_time_skips_generation():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.01)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("conv-gone", lambda: None, recorder)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert llm.prompts == []
    assert recorder.results == []


def test_shutdown_cancels_pending_timers():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.05)

    async def scenario():
        orchestrator.schedule("conv-1", lambda: [line("hi")], Recorder())
        await orchestrator.shutdown()
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert llm.prompts == []


def test_generate_includes_knowledge_from_last_line():
    llm = FakeLLMService()
    knowledge = [
        SearchResult(text="Refunds take 5 business days.", doc_name="policy.txt", score=0.9),
        SearchResult(text="Escalate after two failed attempts.", doc_name="sop.txt", score=0.8),
        SearchResult(text="Unrelated", doc_name="misc.txt", score=0.5),
    ]
    retrieval = FakeRetrieval(knowledge)
    orchestrator = CoachingOrchestrator(
        llm_service=llm, retrieval_service=retrieval, knowledge_limit=2
    )

    outcome = asyncio.run(
        orchestrator.generate([line("Hi", "agent"), line("Where is my refund?")])
    )

    assert retrieval.queries == [("Where is my refund?", 2)]
    assert [k.doc_name for k in outcome.knowledge_context] == ["policy.txt", "sop.txt"]
    prompt = llm.prompts[0]
    assert "--- RELEVANT KNOWLEDGE ---" in prompt
    assert "[From policy.txt]: Refunds take 5 business days." in prompt
    assert "Unrelated" not in prompt
    assert "AGENT: Hi\nCUSTOMER: Where is my refund?" in prompt


def test_generate_without_knowledge_has_no_knowledge_block():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm, retrieval_service=FakeRetrieval())

    outcome = asyncio.run(orchestrator.generate([line("hello")]))

    assert outcome.ok
    assert "RELEVANT KNOWLEDGE" not in llm.prompts[0]


def test_generate_empty_transcript_does_not_call_model():
    llm = FakeLLMService()
    orchestrator = CoachingOrchestrator(llm_service=llm)

    outcome = asyncio.run(orchestrator.generate([]))

    assert outcome.coaching is None
    assert outcome.error is None
    assert llm.prompts == []


def test_generate_reports_unparseable_output():
    llm = FakeLLMService(responses=["not even close to json"])
    orchestrator = CoachingOrchestrator(llm_service=llm)

    outcome = asyncio.run(orchestrator.generate([line("hello")]))

    assert not outcome.ok
    assert outcome.error


def test_generate_reports_model_failure():
    llm = FakeLLMService(error="rate limited")
    orchestrator = CoachingOrchestrator(llm_service=llm)

    outcome = asyncio.run(orchestrator.generate([line("hello")]))

    assert outcome.coaching is None
    assert "rate limited" in outcome.error


def test_generate_without_model_reports_disabled():
    orchestrator = CoachingOrchestrator(llm_service=None)

    outcome = asyncio.run(orchestrator.generate([line("hello")]))

    assert not orchestrator.enabled
    assert outcome.error


def test_summarize_uses_heading_and_requires_model():
    llm = FakeLLMService(summary="Customer asked about a refund.")
    orchestrator = CoachingOrchestrator(llm_service=llm)

    summary = asyncio.run(orchestrator.summarize("CUSTOMER: refund?", heading="VOICE CALL"))

    assert summary == "Customer asked about a refund."
    assert "--- VOICE CALL ---\nCUSTOMER: refund?" in llm.summary_prompts[0]

    with pytest.raises(GenerationFailure):
        asyncio.run(CoachingOrchestrator(llm_service=None).summarize("text"))


def test_build_transcript_text_accepts_role_or_speaker():
    text = build_transcript_text(
        [TranscriptLine(speaker="agent", text="Hello"), TranscriptLine(text="???")]
    )
    assert text == "AGENT: Hello\nUNKNOWN: ???"


def test_result_from_before_cancel_is_not_delivered_after_reschedule():
    llm = FakeLLMService(responses=[coaching_json("Stale"), coaching_json("Fresh")], delay=0.1)
    orchestrator = CoachingOrchestrator(llm_service=llm, delay=0.01)
    recorder = Recorder()

    async def scenario():
        orchestrator.schedule("voice-s1", lambda: [line("old call")], recorder)
        await asyncio.sleep(0.05)
        orchestrator.cancel("voice-s1")
        orchestrator.schedule("voice-s1", lambda: [line("new call")], recorder)
        await asyncio.sleep(0.4)

    asyncio.run(scenario())

    assert len(llm.prompts) == 2
    assert [outcome.coaching.next_action for _, outcome in recorder.results] == ["Fresh"]
