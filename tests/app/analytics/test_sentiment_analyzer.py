"""Tests for SentimentAnalyzer and its reply parsing."""

import pytest

from app.analytics.sentiment_analyzer import (
    BATCH_SIZE,
    SentimentAnalyzer,
    SentimentRequest,
    build_prompt,
    parse_response,
)
from app.exceptions import AnalysisFailure, ExternalServiceTimeout
from app.models.message_sentiment import MessageSentiment
from app.schemas.analytics import EMOTION_KEYS
from tests.fixtures.llm_fixtures import sentiment_reply
from tests.fixtures.message_fixtures import ALICE, GROUP_JID, add_message, add_sentiment


@pytest.fixture
def analyzer(fake_llm, db_manager):
    return SentimentAnalyzer(fake_llm, db_manager.db_session)


def assert_within_bounds(analysis):
    assert analysis.label in {"positive", "negative", "neutral", "mixed"}
    assert -1.0 <= analysis.score <= 1.0
    assert 0.0 <= analysis.confidence <= 1.0
    for key in EMOTION_KEYS:
        assert 0.0 <= getattr(analysis.emotions, key) <= 1.0


def test_parse_valid_reply():
    analysis = parse_response(sentiment_reply("positive", 0.8, 0.9, joy=0.7))
    assert analysis.label == "positive"
    assert analysis.score == 0.8
    assert analysis.emotions.joy == 0.7
    assert analysis.confidence == 0.9


def test_parse_strips_code_fences():
    text = "```json\n" + sentiment_reply("negative", -0.6) + "\n```"
    assert parse_response(text).label == "negative"


def test_parse_clamps_out_of_range_values():
    reply = '{"label": "ecstatic", "score": 3.2, "emotions": {"joy": 1.7, "anger": -0.4}, "confidence": 9}'
    analysis = parse_response(reply)
    assert analysis.label == "neutral"
    assert analysis.score == 1.0
    assert analysis.emotions.joy == 1.0
    assert analysis.emotions.anger == 0.0
    assert analysis.emotions.fear == 0.0
    assert analysis.confidence == 1.0


def test_parse_missing_confidence_defaults():
    analysis = parse_response(sentiment_reply("positive", 0.5, confidence=None))
    assert analysis.confidence == 0.5


@pytest.mark.parametrize(
    "reply",
    ["not json at all", "", "[1, 2, 3]", '{"label": ', '{"score": "very high", "emotions": "lots"}'],
)
def test_parse_garbage_stays_within_bounds(reply):
    assert_within_bounds(parse_response(reply))


def test_parse_malformed_json_is_full_fallback():
    analysis = parse_response("The sentiment is positive!")
    assert analysis.label == "neutral"
    assert analysis.score == 0.0
    assert all(getattr(analysis.emotions, k) == 0.0 for k in EMOTION_KEYS)
    assert analysis.confidence == 0.5


def test_build_prompt_includes_content_and_context():
    prompt = build_prompt("bom dia!", context="earlier: oi")
    assert '"bom dia!"' in prompt
    assert "earlier: oi" in prompt


@pytest.mark.asyncio
async def test_analyze_persists_record(analyzer, fake_llm, db):
    fake_llm.queue(sentiment_reply("positive", 0.8, 0.9, joy=0.7))
    record = await analyzer.analyze("MSG-1", "what a great day")
    assert record.label == "positive"
    assert record.model_used == "fake-llm"
    assert fake_llm.options[0]["temperature"] == 0.3

    row = db.query(MessageSentiment).filter_by(message_id="MSG-1").one()
    assert row.sentiment_label == "positive"
    assert row.emotions["joy"] == 0.7


@pytest.mark.asyncio
async def test_analyze_overwrites_previous_record(analyzer, fake_llm, db):
    fake_llm.queue(sentiment_reply("positive", 0.8), sentiment_reply("negative", -0.9))
    await analyzer.analyze("MSG-1", "first take")
    await analyzer.analyze("MSG-1", "second take")
    rows = db.query(MessageSentiment).filter_by(message_id="MSG-1").all()
    assert len(rows) == 1
    assert rows[0].sentiment_label == "negative"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure", [AnalysisFailure("provider down"), ExternalServiceTimeout("too slow")]
)
async def test_analyze_llm_failure_writes_nothing(analyzer, fake_llm, db, failure):
    fake_llm.queue(failure)
    with pytest.raises(AnalysisFailure):
        await analyzer.analyze("MSG-1", "does not matter")
    assert db.query(MessageSentiment).filter_by(message_id="MSG-1").count() == 0


@pytest.mark.asyncio
async def test_analyze_unparseable_reply_stores_fallback(analyzer, fake_llm, db):
    fake_llm.queue("I'd rather not say")
    record = await analyzer.analyze("MSG-1", "does not matter")
    assert (record.label, record.score, record.confidence) == ("neutral", 0.0, 0.5)
    assert db.query(MessageSentiment).filter_by(message_id="MSG-1").count() == 1


@pytest.mark.asyncio
async def test_analyze_batch_drops_llm_failures(analyzer, fake_llm, db):
    fake_llm.queue(sentiment_reply("positive", 0.6), AnalysisFailure("provider down"))
    requests = [SentimentRequest("MSG-0", "first message"), SentimentRequest("MSG-1", "second message")]
    results = await analyzer.analyze_batch(requests)
    assert [r.message_id for r in results] == ["MSG-0"]
    assert db.query(MessageSentiment).filter_by(message_id="MSG-1").count() == 0


@pytest.mark.asyncio
async def test_analyze_batch_runs_every_item(analyzer, fake_llm, db):
    requests = [SentimentRequest(f"MSG-{i}", f"message number {i}") for i in range(BATCH_SIZE * 2 + 1)]
    results = await analyzer.analyze_batch(requests)
    assert len(results) == len(requests)
    assert db.query(MessageSentiment).count() == len(requests)


@pytest.mark.asyncio
async def test_analyze_batch_drops_failed_items(analyzer, db):
    original = analyzer.analyze

    async def flaky(message_id, content, context=None):
        if message_id == "MSG-2":
            raise RuntimeError("store unavailable")
        return await original(message_id, content, context)

    analyzer.analyze = flaky
    requests = [SentimentRequest(f"MSG-{i}", "some text here") for i in range(4)]
    results = await analyzer.analyze_batch(requests)
    assert sorted(r.message_id for r in results) == ["MSG-0", "MSG-1", "MSG-3"]


def test_progression_and_peaks(analyzer, db):
    add_message(db, "M1", ALICE, 1700000000, conversation_jid=GROUP_JID, content="great")
    add_message(db, "M2", ALICE, 1700000100, conversation_jid=GROUP_JID, content="awful")
    add_message(db, "M3", ALICE, 1700000200, conversation_jid=GROUP_JID, content="ok")
    add_sentiment(db, "M1", "positive", 0.9)
    add_sentiment(db, "M2", "negative", -0.8)
    add_sentiment(db, "M3", "neutral", 0.1)

    progression = analyzer.sentiment_progression(GROUP_JID)
    assert [p["message_id"] for p in progression] == ["M1", "M2", "M3"]

    peaks = analyzer.emotional_peaks(GROUP_JID, threshold=0.7)
    assert [p["message_id"] for p in peaks] == ["M1", "M2"]


DAY = 86400


def seed_scores(db, now_ts, days_ago, scores, prefix, **emotions):
    for i, score in enumerate(scores):
        message_id = f"{prefix}-{i}"
        add_message(db, message_id, ALICE, now_ts - days_ago * DAY - i * 60, content="something")
        add_sentiment(db, message_id, "positive" if score > 0 else "negative", score, **emotions)


def test_sentiment_shift_detects_decline(analyzer, db, now_ts):
    seed_scores(db, now_ts, 10, [0.8, 0.6], "old")
    seed_scores(db, now_ts, 2, [-0.4, -0.2], "new")
    shift = analyzer.sentiment_shift(ALICE, days_back=7, now_ts=now_ts)
    assert shift.previous_average == pytest.approx(0.7)
    assert shift.current_average == pytest.approx(-0.3)
    assert shift.shift_magnitude == pytest.approx(1.0)
    assert shift.is_significant


def test_sentiment_shift_needs_both_windows(analyzer, db, now_ts):
    seed_scores(db, now_ts, 2, [0.9], "new")
    shift = analyzer.sentiment_shift(ALICE, now_ts=now_ts)
    assert shift.current_average == pytest.approx(0.9)
    assert shift.previous_average == 0.0
    assert not shift.is_significant


def test_sentiment_shift_small_change_is_not_significant(analyzer, db, now_ts):
    seed_scores(db, now_ts, 10, [0.5], "old")
    seed_scores(db, now_ts, 2, [0.4], "new")
    assert not analyzer.sentiment_shift(ALICE, now_ts=now_ts).is_significant


def test_emotional_climate(analyzer, db, now_ts):
    seed_scores(db, now_ts, 10, [-0.6, -0.4], "old", sadness=0.6)
    seed_scores(db, now_ts, 2, [0.4, 0.6], "new", joy=0.9)
    climate = analyzer.emotional_climate(ALICE, now_ts=now_ts)
    assert climate.average_sentiment == pytest.approx(0.0)
    assert climate.dominant_emotion == "joy"
    assert climate.emotional_volatility == pytest.approx(0.5888, abs=1e-3)
    assert climate.trend == "improving"


def test_emotional_climate_without_data(analyzer):
    climate = analyzer.emotional_climate(ALICE)
    assert (climate.average_sentiment, climate.dominant_emotion, climate.emotional_volatility, climate.trend) == (
        0.0,
        "neutral",
        0.0,
        "stable",
    )
