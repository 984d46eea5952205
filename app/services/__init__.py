from app.services.alert_service import AlertService
from app.services.behavior_pattern_service import BehaviorPatternService
from app.services.insight_service import InsightService
from app.services.message_service import MessageService
from app.services.relationship_service import RelationshipService
from app.services.sentiment_service import SentimentService

__all__ = [
    "AlertService",
    "BehaviorPatternService",
    "InsightService",
    "MessageService",
    "RelationshipService",
    "SentimentService",
]
