"""
Periodic anomaly sweep.

Rules:
    inactivity       a sender whose last 7 days fall below 30% of their
                     30-day weekly average (only when that average > 10)
    negative_burst   5+ negative messages from one sender in 24 hours

At most one open alert exists per (participant, type). A condition that
keeps firing does not re-alert; once it clears the open alert is resolved,
so a later recurrence opens a fresh one.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.db import SessionFactory
from app.models.alert import Alert
from app.services.alert_service import AlertService
from app.services.sentiment_service import SentimentService

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
INACTIVITY = "inactivity"
NEGATIVE_BURST = "negative_burst"

INACTIVITY_MIN_WEEKLY_AVERAGE = 10
INACTIVITY_RATIO = 0.3
NEGATIVE_BURST_MIN = 5


@dataclass
class AlertCandidate:
    alert_type: str
    severity: str
    participant_jid: str
    title: str
    message: str
    extra: Dict[str, Any] = field(default_factory=dict)


class AlertEngine:
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    def run_sweep(self, now_ts: Optional[int] = None) -> List[Alert]:
        """Evaluate every rule once and return the alerts opened by this sweep."""
        now_ts = now_ts or int(time.time())
        created: List[Alert] = []
        with self.session_factory() as db:
            candidates = self._inactivity(db, now_ts) + self._negative_bursts(db, now_ts)

            # one candidate per (participant, type) within a sweep
            unique: Dict[Tuple[str, str], AlertCandidate] = {}
            for candidate in candidates:
                unique.setdefault((candidate.participant_jid, candidate.alert_type), candidate)

            service = AlertService(db)
            for candidate in unique.values():
                alert = service.open_alert(
                    alert_type=candidate.alert_type,
                    severity=candidate.severity,
                    participant_jid=candidate.participant_jid,
                    title=candidate.title,
                    message=candidate.message,
                    extra=candidate.extra,
                )
                if alert is not None:
                    db.expunge(alert)
                    created.append(alert)

            for alert_type in (INACTIVITY, NEGATIVE_BURST):
                firing = [jid for jid, t in unique if t == alert_type]
                resolved = service.resolve_cleared(alert_type, firing)
                if resolved:
                    logger.info("Resolved %d %s alerts", resolved, alert_type)

        if created:
            logger.info("Alert sweep opened %d alerts", len(created))
        return created

    def _inactivity(self, db, now_ts: int) -> List[AlertCandidate]:
        rows = AlertService(db).sender_activity(
            since_ts=now_ts - 30 * DAY_SECONDS,
            recent_since_ts=now_ts - 7 * DAY_SECONDS,
        )
        candidates = []
        for jid, month_count, week_count in rows:
            weekly_average = month_count / (30 / 7)
            if weekly_average <= INACTIVITY_MIN_WEEKLY_AVERAGE:
                continue
            if week_count < weekly_average * INACTIVITY_RATIO:
                candidates.append(
                    AlertCandidate(
                        alert_type=INACTIVITY,
                        severity="warning",
                        participant_jid=jid,
                        title="Participant activity dropped",
                        message=(
                            f"{jid} sent {week_count} messages in the last 7 days, "
                            f"against a weekly average of {weekly_average:.1f}"
                        ),
                        extra={
                            "recent_count": week_count,
                            "weekly_average": round(weekly_average, 2),
                        },
                    )
                )
        return candidates

    def _negative_bursts(self, db, now_ts: int) -> List[AlertCandidate]:
        rows = SentimentService(db).senders_with_label_since(
            "negative", since_ts=now_ts - DAY_SECONDS, min_count=NEGATIVE_BURST_MIN
        )
        return [
            AlertCandidate(
                alert_type=NEGATIVE_BURST,
                severity="critical",
                participant_jid=jid,
                title="Burst of negative messages",
                message=f"{jid} sent {count} negative messages in the last 24 hours",
                extra={"negative_count": count},
            )
            for jid, count in rows
        ]

    def list_alerts(self, unread_only: bool = False, limit: int = 50) -> List[Alert]:
        with self.session_factory() as db:
            alerts = AlertService(db).list_alerts(unread_only=unread_only, limit=limit)
            for alert in alerts:
                db.expunge(alert)
            return alerts

    def mark_as_read(self, alert_id: int) -> Optional[Alert]:
        with self.session_factory() as db:
            alert = AlertService(db).mark_as_read(alert_id)
            if alert is not None:
                db.expunge(alert)
            return alert
