"""On-demand LLM insights about a participant or a conversation."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List

from pydantic import ValidationError

from app.db import SessionFactory
from app.exceptions import AnalysisFailure, ExternalServiceTimeout
from app.models.ai_insight import AIInsight
from app.schemas.analytics import GeneratedInsight
from app.services.behavior_pattern_service import BehaviorPatternService
from app.services.insight_service import InsightService
from app.services.message_service import MessageService
from app.services.relationship_service import RelationshipService
from app.services.sentiment_service import SentimentService
from app.workers.llm import LLMRunner

logger = logging.getLogger(__name__)

RECENT_MESSAGES = 30
LLM_OPTIONS = {"max_tokens": 2048}

_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)

INSIGHT_PROMPT = """You are an expert in behavioural analysis of WhatsApp conversations.

Analyze the data below about a {target_type} and produce valuable insights as a JSON array:

[
  {{
    "type": "pattern | anomaly | trend | recommendation",
    "title": "short insight title",
    "description": "detailed description",
    "severity": "info | warning | critical",
    "confidence": 0.0-1.0,
    "supporting_data": {{}}
  }}
]

Focus on actionable, meaningful insights. Return ONLY the JSON array.

DATA:
{context}"""


def parse_insights(text: str) -> List[GeneratedInsight]:
    """Parse the model's array; unusable items are skipped, an unusable reply yields []."""
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except (TypeError, ValueError):
        logger.warning("Unparseable insight reply: %r", (text or "")[:200])
        return []
    if not isinstance(parsed, list):
        return []
    insights = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        try:
            insights.append(GeneratedInsight.model_validate(item))
        except ValidationError as e:
            logger.debug("Skipping invalid insight item: %s", e)
    return insights


class InsightGenerator:
    def __init__(self, llm: LLMRunner, session_factory: SessionFactory) -> None:
        self.llm = llm
        self.session_factory = session_factory

    def gather_context(self, target_type: str, target_id: str) -> dict[str, Any]:
        with self.session_factory() as db:
            messages = MessageService(db)
            context: dict[str, Any] = {"target_type": target_type, "target_id": target_id}
            if target_type == "participant":
                participant = messages.get_participant(target_id)
                context["participant"] = (
                    {
                        "name": participant.name,
                        "message_count": participant.message_count,
                        "first_seen_at": participant.first_seen_at.isoformat(),
                        "last_seen_at": participant.last_seen_at.isoformat(),
                    }
                    if participant
                    else None
                )
                context["patterns"] = [
                    {"type": p.pattern_type, "name": p.pattern_name, "data": p.pattern_data}
                    for p in BehaviorPatternService(db).get_patterns(target_id)
                ]
                context["average_sentiment"] = SentimentService(db).participant_average(target_id)
                context["relationships"] = [
                    {
                        "with": r.participant_b_jid
                        if r.participant_a_jid == target_id
                        else r.participant_a_jid,
                        "strength": r.relationship_strength,
                    }
                    for r in RelationshipService(db).get_for_participant(target_id)
                ]
                recent = messages.get_messages_by_participant(target_id, limit=RECENT_MESSAGES)
            else:
                conversation = messages.get_conversation(target_id)
                context["conversation"] = (
                    {
                        "name": conversation.name,
                        "type": conversation.type,
                        "message_count": conversation.message_count,
                    }
                    if conversation
                    else None
                )
                context["sentiment_progression"] = SentimentService(db).progression(
                    target_id, limit=RECENT_MESSAGES
                )
                recent = messages.get_messages_by_conversation(target_id, limit=RECENT_MESSAGES)
            context["recent_messages"] = [
                {"sender": m.sender_name or m.sender_jid, "content": m.content, "timestamp": m.timestamp}
                for m in reversed(recent)
                if m.content
            ]
        return context

    async def generate(self, target_type: str, target_id: str) -> List[AIInsight]:
        """Generate, persist and return insights. Any failure yields an empty list."""
        try:
            context = self.gather_context(target_type, target_id)
            prompt = INSIGHT_PROMPT.format(
                target_type=target_type, context=json.dumps(context, default=str, indent=2)
            )
            reply = await self.llm.complete(prompt, **LLM_OPTIONS)
        except (AnalysisFailure, ExternalServiceTimeout) as e:
            logger.warning("Insight generation failed for %s %s: %s", target_type, target_id, e)
            return []

        generated = parse_insights(reply)
        saved: List[AIInsight] = []
        with self.session_factory() as db:
            service = InsightService(db)
            for item in generated:
                insight = service.create_insight(
                    insight_type=item.type,
                    subject_type=target_type,
                    subject_id=target_id,
                    title=item.title,
                    description=item.description,
                    severity=item.severity,
                    confidence=item.confidence,
                    supporting_data=item.supporting_data,
                )
                db.expunge(insight)
                saved.append(insight)
        logger.info("Generated %d insights for %s %s", len(saved), target_type, target_id)
        return saved

    def list_insights(self, limit: int = 20) -> List[AIInsight]:
        with self.session_factory() as db:
            rows = InsightService(db).list_insights(limit=limit)
            for row in rows:
                db.expunge(row)
            return rows
