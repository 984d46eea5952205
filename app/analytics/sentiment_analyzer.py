"""
LLM sentiment analysis.

The model is asked for a fixed JSON shape; whatever comes back is parsed
through SentimentAnalysis, whose validators clamp every field, and an
unparseable reply becomes the neutral fallback. When the LLM call itself
fails nothing is stored, so the message stays unanalyzed and can be retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import statistics
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from app.db import SessionFactory
from app.exceptions import AnalysisFailure, ExternalServiceTimeout
from app.schemas.analytics import (
    EMOTION_KEYS,
    EmotionalClimate,
    SentimentAnalysis,
    SentimentRecord,
    SentimentShift,
)
from app.services.sentiment_service import SentimentService
from app.workers.llm import LLMRunner

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
SHIFT_THRESHOLD = 0.3
LLM_OPTIONS = {"temperature": 0.3, "max_tokens": 1024}

_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)

SENTIMENT_PROMPT = """You are an expert in sentiment and emotion analysis of WhatsApp conversations.
{context_block}
MESSAGE TO ANALYZE:
"{content}"

Analyze the sentiment and emotions of this message and answer with EXACTLY this JSON:

{{
  "label": "positive | negative | neutral | mixed",
  "score": <number from -1.0 (very negative) to 1.0 (very positive)>,
  "emotions": {{
    "joy": <0.0 to 1.0>,
    "sadness": <0.0 to 1.0>,
    "anger": <0.0 to 1.0>,
    "fear": <0.0 to 1.0>,
    "surprise": <0.0 to 1.0>,
    "disgust": <0.0 to 1.0>
  }},
  "confidence": <0.0 to 1.0>,
  "reasoning": "short explanation"
}}

Guidelines:
- Account for colloquial expressions and emojis
- The score reflects the intensity of the sentiment
- Emotions may coexist; they do not need to sum to 1.0

Return ONLY the JSON, without markdown or extra text."""


@dataclass(frozen=True)
class SentimentRequest:
    message_id: str
    content: str
    context: Optional[str] = None


def build_prompt(content: str, context: Optional[str] = None) -> str:
    context_block = f"\nCONVERSATION CONTEXT:\n{context}\n" if context else ""
    return SENTIMENT_PROMPT.format(context_block=context_block, content=content)


def parse_response(text: str) -> SentimentAnalysis:
    """Parse a model reply; never raises."""
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    try:
        parsed: Any = json.loads(cleaned)
    except (TypeError, ValueError):
        logger.warning("Unparseable sentiment reply: %r", (text or "")[:200])
        return SentimentAnalysis.fallback()
    if not isinstance(parsed, dict):
        return SentimentAnalysis.fallback()
    return SentimentAnalysis.model_validate(parsed)


class SentimentAnalyzer:
    def __init__(self, llm: LLMRunner, session_factory: SessionFactory) -> None:
        self.llm = llm
        self.session_factory = session_factory

    @property
    def model_name(self) -> Optional[str]:
        return getattr(self.llm, "model_name", None)

    async def analyze(
        self, message_id: str, content: str, context: Optional[str] = None
    ) -> SentimentRecord:
        """
        Classify one message and upsert its sentiment record.

        Raises:
            AnalysisFailure: the LLM call failed or timed out; nothing is written.
        """
        try:
            analysis = await self._classify(content, context)
        except AnalysisFailure as e:
            logger.warning("Sentiment analysis failed for %s: %s", message_id, e)
            raise

        with self.session_factory() as db:
            SentimentService(db).upsert_sentiment(
                message_id, analysis, model_used=self.model_name
            )
        return SentimentRecord(
            message_id=message_id,
            label=analysis.label,
            score=analysis.score,
            emotions=analysis.emotions,
            confidence=analysis.confidence,
            model_used=self.model_name,
            reasoning=analysis.reasoning,
        )

    async def _classify(self, content: str, context: Optional[str]) -> SentimentAnalysis:
        try:
            reply = await self.llm.complete(build_prompt(content, context), **LLM_OPTIONS)
        except ExternalServiceTimeout as e:
            raise AnalysisFailure(str(e)) from e
        return parse_response(reply)

    async def analyze_batch(self, requests: Sequence[SentimentRequest]) -> List[SentimentRecord]:
        """Analyze in windows of BATCH_SIZE concurrent calls; failed items are dropped."""
        results: List[SentimentRecord] = []
        for start in range(0, len(requests), BATCH_SIZE):
            window = requests[start : start + BATCH_SIZE]
            outcomes = await asyncio.gather(
                *(self.analyze(r.message_id, r.content, r.context) for r in window),
                return_exceptions=True,
            )
            for request, outcome in zip(window, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "Batch sentiment failed for %s: %s", request.message_id, outcome
                    )
                    continue
                results.append(outcome)
        return results

    def sentiment_progression(self, conversation_jid: str, limit: int = 50) -> List[dict[str, Any]]:
        with self.session_factory() as db:
            return SentimentService(db).progression(conversation_jid, limit=limit)

    def emotional_peaks(self, conversation_jid: str, threshold: float = 0.7) -> List[dict[str, Any]]:
        with self.session_factory() as db:
            return SentimentService(db).peaks(conversation_jid, threshold=threshold)

    def sentiment_shift(
        self, participant_jid: str, days_back: int = 7, now_ts: Optional[int] = None
    ) -> SentimentShift:
        """
        Compare the participant's average score over the last days_back days
        with the days_back days before. The shift is significant when both
        windows have analyzed messages and the averages differ by at least
        SHIFT_THRESHOLD.
        """
        now_ts = now_ts or int(time.time())
        window = days_back * 86400
        with self.session_factory() as db:
            service = SentimentService(db)
            current = service.participant_window_scores(participant_jid, now_ts - window)
            previous = service.participant_window_scores(
                participant_jid, now_ts - 2 * window, now_ts - window
            )
        if not current or not previous:
            return SentimentShift(
                current_average=_mean(current), previous_average=_mean(previous)
            )
        current_avg, previous_avg = _mean(current), _mean(previous)
        magnitude = round(abs(current_avg - previous_avg), 4)
        return SentimentShift(
            current_average=current_avg,
            previous_average=previous_avg,
            shift_magnitude=magnitude,
            is_significant=magnitude >= SHIFT_THRESHOLD,
        )

    def emotional_climate(
        self, participant_jid: str, now_ts: Optional[int] = None
    ) -> EmotionalClimate:
        """Overall mood of a participant: average, volatility, dominant emotion and a weekly trend."""
        with self.session_factory() as db:
            rows = SentimentService(db).participant_sentiments(participant_jid)
        if not rows:
            return EmotionalClimate()

        scores = [score for score, _ in rows]
        emotion_means = {
            key: _mean([emotions.get(key, 0.0) for _, emotions in rows]) for key in EMOTION_KEYS
        }
        dominant = max(EMOTION_KEYS, key=lambda k: emotion_means[k])

        shift = self.sentiment_shift(participant_jid, days_back=7, now_ts=now_ts)
        trend = "stable"
        if shift.is_significant:
            trend = "improving" if shift.current_average > shift.previous_average else "declining"

        return EmotionalClimate(
            average_sentiment=_mean(scores),
            dominant_emotion=dominant if emotion_means[dominant] > 0 else "neutral",
            emotional_volatility=round(statistics.stdev(scores), 4) if len(scores) > 1 else 0.0,
            trend=trend,
        )


def _mean(values: Sequence[float]) -> float:
    return round(statistics.fmean(values), 4) if values else 0.0
