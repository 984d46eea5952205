"""Pydantic schemas for sentiment, patterns, relationships, alerts and insights."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

SentimentLabel = Literal["positive", "negative", "neutral", "mixed"]
SENTIMENT_LABELS: frozenset[str] = frozenset({"positive", "negative", "neutral", "mixed"})
EMOTION_KEYS: tuple[str, ...] = ("joy", "sadness", "anger", "fear", "surprise", "disgust")

PatternType = Literal["active_hours", "response_time", "message_frequency"]
AlertSeverity = Literal["info", "warning", "critical"]

T = TypeVar("T")


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    """Coerce to float and clamp; anything non-numeric (or NaN) becomes default."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(low, min(high, number))


# -----------------------------------------------------------------------------
# Sentiment
# -----------------------------------------------------------------------------


class EmotionScores(BaseModel):
    """Fixed six-key emotion vector; each value in [0, 1], missing keys are 0."""

    joy: float = 0.0
    sadness: float = 0.0
    anger: float = 0.0
    fear: float = 0.0
    surprise: float = 0.0
    disgust: float = 0.0

    @field_validator(*EMOTION_KEYS, mode="before")
    @classmethod
    def clamp_emotion(cls, v: Any) -> float:
        return _clamp(v, 0.0, 1.0, 0.0)

    @classmethod
    def from_raw(cls, raw: Any) -> "EmotionScores":
        if not isinstance(raw, dict):
            return cls()
        return cls(**{k: raw.get(k) for k in EMOTION_KEYS if raw.get(k) is not None})


class SentimentAnalysis(BaseModel):
    """
    Parsed model reply. Validators never raise: every field degrades to its
    fallback value so the result always satisfies the documented bounds.
    """

    label: SentimentLabel = "neutral"
    score: float = 0.0
    emotions: EmotionScores = Field(default_factory=EmotionScores)
    confidence: float = 0.5
    reasoning: str = "Automatic analysis"

    @field_validator("label", mode="before")
    @classmethod
    def normalize_label(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in SENTIMENT_LABELS:
            return v.strip().lower()
        return "neutral"

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> float:
        return _clamp(v, -1.0, 1.0, 0.0)

    @field_validator("emotions", mode="before")
    @classmethod
    def normalize_emotions(cls, v: Any) -> EmotionScores:
        if isinstance(v, EmotionScores):
            return v
        return EmotionScores.from_raw(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp(v, 0.0, 1.0, 0.5)

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, v: Any) -> str:
        return str(v) if v else "Automatic analysis"

    @classmethod
    def fallback(cls) -> "SentimentAnalysis":
        return cls(reasoning="Automatic analysis (fallback)")


class SentimentRecord(BaseModel):
    """Sentiment result for one message, as persisted."""

    model_config = ConfigDict(from_attributes=True)

    message_id: str
    label: SentimentLabel
    score: float
    emotions: EmotionScores
    confidence: float
    model_used: Optional[str] = None
    reasoning: Optional[str] = None


class SentimentShift(BaseModel):
    """Average score of the last days_back days against the days_back days before."""

    current_average: float = 0.0
    previous_average: float = 0.0
    shift_magnitude: float = 0.0
    is_significant: bool = False


class EmotionalClimate(BaseModel):
    average_sentiment: float = 0.0
    dominant_emotion: str = "neutral"
    emotional_volatility: float = 0.0
    trend: Literal["improving", "declining", "stable"] = "stable"


# -----------------------------------------------------------------------------
# Behaviour patterns
# -----------------------------------------------------------------------------


class ActiveHoursPattern(BaseModel):
    most_active_hour: int
    least_active_hour: int
    hourly_distribution: dict[int, float]
    preferred_time_of_day: Literal["morning", "afternoon", "evening", "night"]


class ResponseTimePattern(BaseModel):
    average_response_time_seconds: int
    median_response_time_seconds: int
    fastest_response_seconds: int
    slowest_response_seconds: int
    total_responses: int


class MessageFrequencyPattern(BaseModel):
    messages_per_day: float
    messages_per_week: float
    peak_days: list[str] = Field(default_factory=list)
    quiet_days: list[str] = Field(default_factory=list)
    trend_direction: Literal["increasing", "decreasing", "stable"] = "stable"


class DetectedPattern(BaseModel):
    """A detector result before it is upserted into behavior_patterns."""

    participant_jid: str
    pattern_type: PatternType
    pattern_name: str
    pattern_data: dict[str, Any]
    confidence: float = Field(..., ge=0.0, le=1.0)
    sample_size: int


class BehaviorPatternRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    participant_jid: str
    pattern_type: str
    pattern_name: Optional[str] = None
    pattern_data: dict[str, Any]
    confidence: float
    observation_count: int
    detected_at: datetime
    last_observed_at: datetime


# -----------------------------------------------------------------------------
# Read projections
# -----------------------------------------------------------------------------


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message_id: str
    conversation_jid: str
    sender_jid: str
    sender_name: Optional[str] = None
    message_type: str
    content: Optional[str] = None
    timestamp: int
    is_from_me: bool
    has_media: bool
    media_type: Optional[str] = None
    quoted_message_id: Optional[str] = None


class ParticipantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    jid: str
    name: Optional[str] = None
    message_count: int
    first_seen_at: datetime
    last_seen_at: datetime


class ConversationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    jid: str
    name: Optional[str] = None
    type: str
    message_count: int
    last_message_at: Optional[datetime] = None


class RelationshipRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_a_jid: str
    participant_b_jid: str
    relationship_strength: float
    total_interactions: int
    last_interaction_at: Optional[datetime] = None


class AlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    alert_type: str
    severity: str
    participant_jid: Optional[str] = None
    conversation_jid: Optional[str] = None
    title: Optional[str] = None
    message: str
    is_read: bool
    triggered_at: datetime
    resolved_at: Optional[datetime] = None


class InsightRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    insight_type: str
    subject_type: str
    subject_id: str
    title: str
    description: Optional[str] = None
    severity: str
    confidence: float
    supporting_data: Optional[dict[str, Any]] = None
    detected_at: datetime


class GenerateInsightsRequest(BaseModel):
    target_type: Literal["participant", "conversation"]
    target_id: str = Field(..., min_length=1)


class ApiResponse(BaseModel, Generic[T]):
    """Envelope used by every dashboard endpoint."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


# -----------------------------------------------------------------------------
# Insights
# -----------------------------------------------------------------------------

INSIGHT_TYPES: frozenset[str] = frozenset({"pattern", "anomaly", "trend", "recommendation"})
SEVERITIES: frozenset[str] = frozenset({"info", "warning", "critical"})


class GeneratedInsight(BaseModel):
    """One item of the model's insight list, normalized like SentimentAnalysis."""

    type: str = "pattern"
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    severity: AlertSeverity = "info"
    confidence: float = 0.5
    supporting_data: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("supporting_data", "supportingData"),
    )

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in INSIGHT_TYPES:
            return v.strip().lower()
        return "pattern"

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in SEVERITIES:
            return v.strip().lower()
        return "info"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return _clamp(v, 0.0, 1.0, 0.5)

    @field_validator("supporting_data", mode="before")
    @classmethod
    def default_supporting_data(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}
