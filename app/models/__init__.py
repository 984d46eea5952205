from app.models.ai_insight import AIInsight
from app.models.alert import Alert
from app.models.behavior_pattern import BehaviorPattern
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.message_sentiment import MessageSentiment
from app.models.participant import Participant
from app.models.participant_relationship import ParticipantRelationship

__all__ = [
    "AIInsight",
    "Alert",
    "BehaviorPattern",
    "Conversation",
    "Message",
    "MessageSentiment",
    "Participant",
    "ParticipantRelationship",
]
