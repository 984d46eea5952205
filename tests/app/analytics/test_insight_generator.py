"""Tests for InsightGenerator."""

import json

import pytest

from app.analytics.insight_generator import InsightGenerator, parse_insights
from app.exceptions import AnalysisFailure, ExternalServiceTimeout
from app.models.ai_insight import AIInsight
from tests.fixtures.message_fixtures import ALICE, GROUP_JID, add_message, add_sentiment

INSIGHTS_REPLY = json.dumps(
    [
        {
            "type": "trend",
            "title": "Mornings are busiest",
            "description": "Most messages arrive before noon.",
            "severity": "info",
            "confidence": 0.8,
            "supporting_data": {"peak_hour": 9},
        },
        {
            "type": "Recommendation",
            "title": "Check in with Alice",
            "severity": "urgent",
            "confidence": 4,
            "supportingData": {"negative_count": 6},
        },
    ]
)


@pytest.fixture
def generator(fake_llm, db_manager):
    return InsightGenerator(fake_llm, db_manager.db_session)


def test_parse_insights_normalizes_items():
    insights = parse_insights("```json\n" + INSIGHTS_REPLY + "\n```")
    assert [i.type for i in insights] == ["trend", "recommendation"]
    assert insights[1].severity == "info"
    assert insights[1].confidence == 1.0
    assert insights[1].supporting_data == {"negative_count": 6}


def test_parse_insights_skips_unusable_items():
    reply = json.dumps([{"title": ""}, "nonsense", {"title": "Kept", "type": "whatever"}])
    insights = parse_insights(reply)
    assert [(i.title, i.type) for i in insights] == [("Kept", "pattern")]


@pytest.mark.parametrize("reply", ["no insights today", '{"title": "not a list"}', ""])
def test_parse_insights_unusable_reply(reply):
    assert parse_insights(reply) == []


@pytest.mark.asyncio
async def test_generate_persists_insights(generator, fake_llm, db, now_ts):
    add_message(db, "m1", ALICE, now_ts - 60, conversation_jid=GROUP_JID, content="good morning all")
    add_sentiment(db, "m1", "positive", 0.7)
    fake_llm.queue(INSIGHTS_REPLY)

    saved = await generator.generate("conversation", GROUP_JID)
    assert [i.title for i in saved] == ["Mornings are busiest", "Check in with Alice"]
    assert db.query(AIInsight).filter_by(subject_id=GROUP_JID).count() == 2

    prompt = fake_llm.prompts[0]
    assert "good morning all" in prompt
    assert GROUP_JID in prompt
    assert fake_llm.options[0] == {"max_tokens": 2048}


@pytest.mark.asyncio
async def test_generate_for_unknown_participant_still_prompts(generator, fake_llm):
    fake_llm.queue("[]")
    assert await generator.generate("participant", ALICE) == []
    assert '"participant": null' in fake_llm.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [AnalysisFailure("down"), ExternalServiceTimeout("slow")])
async def test_generate_failure_returns_empty(generator, fake_llm, db, failure):
    fake_llm.queue(failure)
    assert await generator.generate("participant", ALICE) == []
    assert db.query(AIInsight).count() == 0


@pytest.mark.asyncio
async def test_list_insights_newest_first(generator, fake_llm):
    fake_llm.queue(INSIGHTS_REPLY)
    await generator.generate("participant", ALICE)
    listed = generator.list_insights(limit=1)
    assert len(listed) == 1
