"""
Dashboard read API.

Every response uses the {success, data, error} envelope; failures are logged
and answered with success=false rather than a bare HTTP error body.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.core.app_state import AppState
from app.db import get_db
from app.routers.utils.dependencies import get_app_state
from app.schemas.analytics import (
    AlertRead,
    ApiResponse,
    BehaviorPatternRead,
    ConversationRead,
    GenerateInsightsRequest,
    InsightRead,
    MessageRead,
    ParticipantRead,
    RelationshipRead,
)
from app.services.alert_service import AlertService
from app.services.insight_service import InsightService
from app.services.message_service import MessageService
from app.services.relationship_service import RelationshipService
from app.services.sentiment_service import SentimentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _ok(data: Any) -> dict[str, Any]:
    return ApiResponse[Any](success=True, data=jsonable_encoder(data)).model_dump()


def _fail(error: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse[Any](success=False, error=error).model_dump(),
    )


def _error(route: str, e: Exception) -> JSONResponse:
    logger.exception("Dashboard route %s failed: %s", route, e)
    return _fail(str(e))


# --- Overview ---


@router.get("/dashboard/overview")
def dashboard_overview(db: Session = Depends(get_db)):
    """Totals, unread alerts and recent insights."""
    try:
        metrics = MessageService(db).get_overview_counts()
        alerts = AlertService(db)
        metrics["unread_alerts"] = alerts.count_unread()
        return _ok(
            {
                "metrics": metrics,
                "alerts": [
                    AlertRead.model_validate(a)
                    for a in alerts.list_alerts(unread_only=True, limit=10)
                ],
                "insights": [
                    InsightRead.model_validate(i)
                    for i in InsightService(db).list_insights(limit=10)
                ],
            }
        )
    except Exception as e:
        return _error("dashboard_overview", e)


# --- Participants ---


@router.get("/participants")
def list_participants(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    try:
        participants = MessageService(db).get_participants(limit=limit)
        return _ok([ParticipantRead.model_validate(p) for p in participants])
    except Exception as e:
        return _error("list_participants", e)


@router.get("/participants/{jid}/profile")
def participant_profile(
    jid: str,
    db: Session = Depends(get_db),
    state: AppState = Depends(get_app_state),
):
    """Participant with patterns, strongest relationships and sentiment summary."""
    try:
        participant = MessageService(db).get_participant(jid)
        if participant is None:
            return _fail("Participant not found", status_code=404)
        return _ok(
            {
                "participant": ParticipantRead.model_validate(participant),
                "patterns": [
                    BehaviorPatternRead.model_validate(p)
                    for p in state.pattern_detector.get_patterns(jid)
                ],
                "relationships": [
                    RelationshipRead.model_validate(r)
                    for r in RelationshipService(db).get_for_participant(jid)
                ],
                "average_sentiment": SentimentService(db).participant_average(jid),
                "sentiment_shift": state.sentiment_analyzer.sentiment_shift(jid),
                "emotional_climate": state.sentiment_analyzer.emotional_climate(jid),
            }
        )
    except Exception as e:
        return _error("participant_profile", e)


@router.post("/participants/{jid}/analyze")
async def analyze_participant(jid: str, state: AppState = Depends(get_app_state)):
    """Run pattern detection for one participant now."""
    try:
        patterns = await state.pattern_detector.detect_all_patterns(jid)
        return _ok([BehaviorPatternRead.model_validate(p) for p in patterns])
    except Exception as e:
        return _error("analyze_participant", e)


# --- Conversations ---


@router.get("/conversations")
def list_conversations(
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    try:
        conversations = MessageService(db).get_conversations(limit=limit)
        return _ok([ConversationRead.model_validate(c) for c in conversations])
    except Exception as e:
        return _error("list_conversations", e)


@router.get("/conversations/{jid}")
def get_conversation(jid: str, db: Session = Depends(get_db)):
    try:
        conversation = MessageService(db).get_conversation(jid)
        if conversation is None:
            return _fail("Conversation not found", status_code=404)
        return _ok(ConversationRead.model_validate(conversation))
    except Exception as e:
        return _error("get_conversation", e)


@router.get("/conversations/{jid}/messages")
def conversation_messages(
    jid: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    try:
        messages = MessageService(db).get_messages_by_conversation(
            jid, limit=limit, offset=offset
        )
        return _ok([MessageRead.model_validate(m) for m in messages])
    except Exception as e:
        return _error("conversation_messages", e)


# --- Sentiment ---


@router.get("/sentiment/conversation/{jid}/progression")
def sentiment_progression(
    jid: str,
    limit: int = Query(50, ge=1, le=500),
    state: AppState = Depends(get_app_state),
):
    try:
        return _ok(state.sentiment_analyzer.sentiment_progression(jid, limit=limit))
    except Exception as e:
        return _error("sentiment_progression", e)


@router.get("/sentiment/conversation/{jid}/peaks")
def sentiment_peaks(
    jid: str,
    threshold: float = Query(0.7, ge=0.0, le=1.0),
    state: AppState = Depends(get_app_state),
):
    try:
        return _ok(state.sentiment_analyzer.emotional_peaks(jid, threshold=threshold))
    except Exception as e:
        return _error("sentiment_peaks", e)


# --- Relationships ---


@router.get("/relationships/strongest")
def strongest_relationships(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        relationships = RelationshipService(db).get_strongest(limit=limit)
        return _ok([RelationshipRead.model_validate(r) for r in relationships])
    except Exception as e:
        return _error("strongest_relationships", e)


@router.get("/relationships/graph")
def relationship_graph(
    conversation: Optional[str] = Query(None),
    state: AppState = Depends(get_app_state),
):
    try:
        return _ok(state.relationship_builder.build_graph(conversation))
    except Exception as e:
        return _error("relationship_graph", e)


# --- Insights ---


@router.get("/insights")
def list_insights(
    limit: int = Query(50, ge=1, le=200),
    state: AppState = Depends(get_app_state),
):
    try:
        insights = state.insight_generator.list_insights(limit=limit)
        return _ok([InsightRead.model_validate(i) for i in insights])
    except Exception as e:
        return _error("list_insights", e)


@router.post("/insights/generate")
async def generate_insights(
    body: GenerateInsightsRequest,
    state: AppState = Depends(get_app_state),
):
    try:
        insights = await state.insight_generator.generate(body.target_type, body.target_id)
        return _ok([InsightRead.model_validate(i) for i in insights])
    except Exception as e:
        return _error("generate_insights", e)


# --- Alerts ---


@router.get("/alerts")
def list_alerts(
    unread_only: bool = Query(True),
    limit: int = Query(50, ge=1, le=200),
    state: AppState = Depends(get_app_state),
):
    try:
        alerts = state.alert_engine.list_alerts(unread_only=unread_only, limit=limit)
        return _ok([AlertRead.model_validate(a) for a in alerts])
    except Exception as e:
        return _error("list_alerts", e)


@router.post("/alerts/{alert_id}/read")
def mark_alert_read(alert_id: int, state: AppState = Depends(get_app_state)):
    try:
        alert = state.alert_engine.mark_as_read(alert_id)
        if alert is None:
            return _fail("Alert not found", status_code=404)
        return _ok(AlertRead.model_validate(alert))
    except Exception as e:
        return _error("mark_alert_read", e)
