import asyncio
import json
import math

import pytest

from agentassist.services.embedding_service import EmbeddingFailure, EmbeddingTask
from agentassist.services.llm_service import GenerationFailure

VALID_COACHING = {
    "nextAction": "Verify Identity Before Proceeding",
    "smartReplies": ["May I have your email address?", "Could you confirm your phone number?"],
    "sentiment": "neutral",
    "insights": [{"label": "Identity Not Verified", "tip": "Ask for email", "color": "amber"}],
    "escalationRisk": 20,
}


def unit_vector(score):
    """A 2-d unit vector whose cosine with [1, 0] equals score."""
    return [score, math.sqrt(1 - score * score)]


class FakeConnection:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self, name=None):
        return [m for m in self.sent if name is None or m["type"] == name]


class BrokenConnection:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


class FakeEmbeddingService:
    def __init__(self, vectors=None, default=None, fail_on=(), fail_queries=False):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0]
        self.fail_on = set(fail_on)
        self.fail_queries = fail_queries
        self.calls = []

    async def embed(self, text, task=EmbeddingTask.DOCUMENT):
        self.calls.append((text, task))
        if text in self.fail_on:
            raise EmbeddingFailure(f"cannot embed {text!r}")
        if task == EmbeddingTask.QUERY and self.fail_queries:
            raise EmbeddingFailure("query embedding unavailable")
        return list(self.vectors.get(text, self.default))


class FakeLLMService:
    def __init__(self, responses=None, delay=0.0, error=None, summary="Summary text"):
        self.responses = list(responses or [json.dumps(VALID_COACHING)])
        self.delay = delay
        self.error = error
        self.summary = summary
        self.prompts = []
        self.summary_prompts = []

    async def generate_coaching(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise GenerationFailure(self.error)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def summarize(self, prompt):
        self.summary_prompts.append(prompt)
        if self.error:
            raise GenerationFailure(self.error)
        return self.summary


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingService()


@pytest.fixture
def fake_llm():
    return FakeLLMService()
