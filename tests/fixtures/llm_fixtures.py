"""Stand-in LLM runner for analytics tests."""

import json
from typing import Any, List, Optional, Union

import pytest


class FakeLLM:
    """
    Replays queued replies in order. A queued exception is raised instead of
    returned; once the queue is empty, default_reply is used.
    """

    model_name = "fake-llm"

    def __init__(self, default_reply: str = "") -> None:
        self.default_reply = default_reply
        self.replies: List[Union[str, BaseException]] = []
        self.prompts: List[str] = []
        self.options: List[dict[str, Any]] = []

    def queue(self, *replies: Union[str, BaseException]) -> None:
        self.replies.extend(replies)

    async def complete(self, prompt: str, **options: Any) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        reply = self.replies.pop(0) if self.replies else self.default_reply
        if isinstance(reply, BaseException):
            raise reply
        return reply


def sentiment_reply(
    label: str = "positive",
    score: float = 0.8,
    confidence: Optional[float] = 0.9,
    **emotions: float,
) -> str:
    body: dict[str, Any] = {
        "label": label,
        "score": score,
        "emotions": {"joy": 0.0, **emotions},
        "reasoning": "test",
    }
    if confidence is not None:
        body["confidence"] = confidence
    return json.dumps(body)


@pytest.fixture
def fake_llm():
    return FakeLLM(default_reply=sentiment_reply("neutral", 0.0, 0.5))
