"""
Automatic analytics orchestrator.

Subscribes to the processor's events and drives the analytics components:

    MessageAnalyze      -> sentiment analysis (skips short or already analyzed)
    RelationshipUpdate  -> relationship refresh against recent co-senders
    MessageSaved        -> counter; every Nth message a pattern sweep
    timer               -> alert sweep

Every handler owns its errors; a failing handler is logged and never reaches
ingestion or the other handlers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.adapters.evolution import is_text_bearing
from app.analytics.alert_engine import AlertEngine
from app.analytics.pattern_detector import PatternDetector
from app.analytics.relationship_builder import RelationshipBuilder
from app.analytics.sentiment_analyzer import SentimentAnalyzer
from app.core.events import EventBus, MessageAnalyze, MessageSaved, RelationshipUpdate
from app.db import SessionFactory
from app.exceptions import AnalysisFailure
from app.services.message_service import MessageService
from app.services.sentiment_service import SentimentService

logger = logging.getLogger(__name__)

RELATIONSHIP_MAX_PEERS = 50
PATTERN_SWEEP_PARTICIPANTS = 100
PATTERN_SWEEP_ACTIVE_DAYS = 7


class AnalyticsOrchestrator:
    def __init__(
        self,
        event_bus: EventBus,
        session_factory: SessionFactory,
        sentiment_analyzer: SentimentAnalyzer,
        relationship_builder: RelationshipBuilder,
        pattern_detector: PatternDetector,
        alert_engine: AlertEngine,
        alert_interval_seconds: float = 300.0,
        pattern_sweep_every: int = 100,
        sentiment_min_length: int = 5,
    ) -> None:
        self.event_bus = event_bus
        self.session_factory = session_factory
        self.sentiment_analyzer = sentiment_analyzer
        self.relationship_builder = relationship_builder
        self.pattern_detector = pattern_detector
        self.alert_engine = alert_engine
        self.alert_interval_seconds = alert_interval_seconds
        self.pattern_sweep_every = pattern_sweep_every
        self.sentiment_min_length = sentiment_min_length

        self.message_count = 0
        self._running = False
        self._alert_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Analytics orchestrator already running")
            return
        self.event_bus.subscribe(MessageAnalyze, self.handle_message_analyze)
        self.event_bus.subscribe(RelationshipUpdate, self.handle_relationship_update)
        self.event_bus.subscribe(MessageSaved, self.handle_message_saved)
        self._alert_task = asyncio.create_task(self._alert_loop())
        self._running = True
        logger.info(
            "Analytics orchestrator started (alerts every %ss, patterns every %d messages)",
            self.alert_interval_seconds,
            self.pattern_sweep_every,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self.event_bus.unsubscribe(MessageAnalyze, self.handle_message_analyze)
        self.event_bus.unsubscribe(RelationshipUpdate, self.handle_relationship_update)
        self.event_bus.unsubscribe(MessageSaved, self.handle_message_saved)
        if self._alert_task is not None:
            self._alert_task.cancel()
            try:
                await self._alert_task
            except asyncio.CancelledError:
                pass
            self._alert_task = None
        self._running = False
        logger.info("Analytics orchestrator stopped")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def handle_message_analyze(self, event: MessageAnalyze) -> None:
        try:
            content = (event.content or "").strip()
            if len(content) < self.sentiment_min_length or not is_text_bearing(content):
                return
            with self.session_factory() as db:
                if SentimentService(db).has_sentiment(event.message_id):
                    return
            await self.sentiment_analyzer.analyze(event.message_id, content)
        except AnalysisFailure as e:
            logger.warning("Sentiment left pending for %s: %s", event.message_id, e)
        except Exception as e:
            logger.exception("Sentiment handler failed for %s: %s", event.message_id, e)

    async def handle_relationship_update(self, event: RelationshipUpdate) -> None:
        try:
            since_ts = int(time.time()) - self.relationship_builder.lookback_days * 86400
            with self.session_factory() as db:
                peers = MessageService(db).get_other_recent_senders(
                    event.conversation_jid,
                    exclude_jid=event.sender_jid,
                    since_ts=since_ts,
                    limit=RELATIONSHIP_MAX_PEERS,
                )
            for peer in peers:
                await self.relationship_builder.update_relationship(event.sender_jid, peer)
        except Exception as e:
            logger.exception(
                "Relationship handler failed for %s in %s: %s",
                event.sender_jid,
                event.conversation_jid,
                e,
            )

    async def handle_message_saved(self, event: MessageSaved) -> None:
        self.message_count += 1
        if self.message_count % self.pattern_sweep_every != 0:
            return
        try:
            await self.run_pattern_sweep()
        except Exception as e:
            logger.exception("Pattern sweep failed: %s", e)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def run_pattern_sweep(self) -> int:
        """Detect patterns for recently active participants; returns how many were scanned."""
        since = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(
            days=PATTERN_SWEEP_ACTIVE_DAYS
        )
        with self.session_factory() as db:
            participants = MessageService(db).get_recently_active_participants(
                since, limit=PATTERN_SWEEP_PARTICIPANTS
            )
        for jid in participants:
            await self.pattern_detector.detect_all_patterns(jid)
        logger.info("Pattern sweep covered %d participants", len(participants))
        return len(participants)

    async def run_alert_sweep(self) -> None:
        try:
            await asyncio.to_thread(self.alert_engine.run_sweep)
        except Exception as e:
            logger.exception("Alert sweep failed: %s", e)

    async def _alert_loop(self) -> None:
        while True:
            await asyncio.sleep(self.alert_interval_seconds)
            await self.run_alert_sweep()
