from __future__ import annotations

from typing import Optional

from app.adapters.evolution import EvolutionAdapter
from app.analytics.alert_engine import AlertEngine
from app.analytics.insight_generator import InsightGenerator
from app.analytics.orchestrator import AnalyticsOrchestrator
from app.analytics.pattern_detector import PatternDetector
from app.analytics.relationship_builder import RelationshipBuilder
from app.analytics.sentiment_analyzer import SentimentAnalyzer
from app.config import Settings, get_settings
from app.core.events import EventBus
from app.core.message_processor import MessageProcessor
from app.db import DatabaseManager, db_manager
from app.workers.llm import LLMRunner, build_llm_runner_from_env


class AppState:
    """Builds the pipeline once and holds it for the lifetime of the app."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[DatabaseManager] = None,
        llm: Optional[LLMRunner] = None,
        adapter: Optional[EvolutionAdapter] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.database = database or db_manager
        session_factory = self.database.db_session

        self.event_bus = EventBus()
        self.llm = llm or build_llm_runner_from_env()
        self.adapter = adapter or EvolutionAdapter(
            base_url=self.settings.evolution_api_url,
            api_key=self.settings.evolution_api_key,
            instance=self.settings.evolution_instance,
            webhook_apikey=self.settings.evolution_webhook_apikey,
            timeout_seconds=self.settings.gateway_timeout_seconds,
            max_attempts=self.settings.gateway_max_attempts,
        )
        self.processor = MessageProcessor(self.adapter, session_factory, self.event_bus)

        self.sentiment_analyzer = SentimentAnalyzer(self.llm, session_factory)
        self.relationship_builder = RelationshipBuilder(
            session_factory,
            window_seconds=self.settings.relationship_window_seconds,
            lookback_days=self.settings.relationship_lookback_days,
            saturation=self.settings.relationship_saturation,
        )
        self.pattern_detector = PatternDetector(session_factory)
        self.alert_engine = AlertEngine(session_factory)
        self.insight_generator = InsightGenerator(self.llm, session_factory)
        self.orchestrator = AnalyticsOrchestrator(
            self.event_bus,
            session_factory,
            self.sentiment_analyzer,
            self.relationship_builder,
            self.pattern_detector,
            self.alert_engine,
            alert_interval_seconds=self.settings.alert_sweep_interval_seconds,
            pattern_sweep_every=self.settings.pattern_sweep_every,
            sentiment_min_length=self.settings.sentiment_min_length,
        )

    async def startup(self) -> None:
        if self.settings.analytics_enabled:
            self.orchestrator.start()

    async def shutdown(self) -> None:
        await self.orchestrator.stop()
        await self.event_bus.drain()
        await self.adapter.close()
