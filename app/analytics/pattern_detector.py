"""
Behaviour pattern detection over a participant's trailing 30 days.

Each detector is a plain function of the participant's history and returns
None when there is too little data. Confidence is a step function of sample
size, not a statistical estimate.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from app.db import SessionFactory
from app.models.behavior_pattern import BehaviorPattern
from app.schemas.analytics import (
    ActiveHoursPattern,
    DetectedPattern,
    MessageFrequencyPattern,
    ResponseTimePattern,
)
from app.services.behavior_pattern_service import BehaviorPatternService

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 30
DAY_SECONDS = 86400
MIN_RESPONSE_SAMPLES = 3
CONFIDENT_SAMPLE_SIZE = 10
TREND_THRESHOLD = 0.2
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _utc(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def detect_active_hours(participant_jid: str, timestamps: Sequence[int]) -> Optional[DetectedPattern]:
    if not timestamps:
        return None
    hours = Counter(_utc(ts).hour for ts in timestamps)
    total = len(timestamps)
    ranked = hours.most_common()
    most_active = ranked[0][0]
    least_active = ranked[-1][0]
    data = ActiveHoursPattern(
        most_active_hour=most_active,
        least_active_hour=least_active,
        hourly_distribution={h: round(n / total * 100, 2) for h, n in sorted(hours.items())},
        preferred_time_of_day=time_of_day(most_active),
    )
    return DetectedPattern(
        participant_jid=participant_jid,
        pattern_type="active_hours",
        pattern_name=f"Most active at {most_active}h ({data.preferred_time_of_day})",
        pattern_data=data.model_dump(mode="json"),
        confidence=0.9 if total >= CONFIDENT_SAMPLE_SIZE else 0.6,
        sample_size=total,
    )


def detect_response_time(
    participant_jid: str, reply_pairs: Sequence[Tuple[int, int]]
) -> Optional[DetectedPattern]:
    delays = [r - q for q, r in reply_pairs if 0 < r - q < DAY_SECONDS]
    if len(delays) < MIN_RESPONSE_SAMPLES:
        return None
    average = statistics.mean(delays)
    data = ResponseTimePattern(
        average_response_time_seconds=round(average),
        median_response_time_seconds=round(statistics.median(delays)),
        fastest_response_seconds=min(delays),
        slowest_response_seconds=max(delays),
        total_responses=len(delays),
    )
    minutes = average / 60
    if minutes < 5:
        speed = "very fast"
    elif minutes < 30:
        speed = "fast"
    elif minutes < 120:
        speed = "moderate"
    else:
        speed = "slow"
    return DetectedPattern(
        participant_jid=participant_jid,
        pattern_type="response_time",
        pattern_name=f"Replies {speed} (average {round(minutes)}min)",
        pattern_data=data.model_dump(mode="json"),
        confidence=0.85 if len(delays) >= CONFIDENT_SAMPLE_SIZE else 0.65,
        sample_size=len(delays),
    )


def trend_direction(timestamps: Sequence[int], now_ts: int, days: int = LOOKBACK_DAYS) -> str:
    """Compare the recent half of the window against the older half."""
    midpoint = now_ts - (days * DAY_SECONDS) // 2
    older = sum(1 for ts in timestamps if ts < midpoint)
    recent = len(timestamps) - older
    if older == 0:
        return "increasing" if recent > 0 else "stable"
    change = (recent - older) / older
    if change > TREND_THRESHOLD:
        return "increasing"
    if change < -TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def detect_message_frequency(
    participant_jid: str, timestamps: Sequence[int], now_ts: Optional[int] = None
) -> Optional[DetectedPattern]:
    if not timestamps:
        return None
    now_ts = now_ts or int(time.time())
    dates = [_utc(ts) for ts in timestamps]
    active_days = {d.date() for d in dates}
    active_weeks = {d.isocalendar()[:2] for d in dates}
    total = len(timestamps)

    by_weekday = Counter(d.weekday() for d in dates)
    mean_per_weekday = total / 7
    peak_days = [WEEKDAYS[i] for i in range(7) if by_weekday[i] >= mean_per_weekday * 1.25]
    quiet_days = [WEEKDAYS[i] for i in range(7) if by_weekday[i] <= mean_per_weekday * 0.5]

    data = MessageFrequencyPattern(
        messages_per_day=round(total / len(active_days), 2),
        messages_per_week=round(total / len(active_weeks), 2),
        peak_days=peak_days,
        quiet_days=quiet_days,
        trend_direction=trend_direction(timestamps, now_ts),
    )
    return DetectedPattern(
        participant_jid=participant_jid,
        pattern_type="message_frequency",
        pattern_name=f"{data.messages_per_day:g} messages/day",
        pattern_data=data.model_dump(mode="json"),
        confidence=0.8 if total >= CONFIDENT_SAMPLE_SIZE else 0.5,
        sample_size=total,
    )


class PatternDetector:
    def __init__(self, session_factory: SessionFactory, lookback_days: int = LOOKBACK_DAYS) -> None:
        self.session_factory = session_factory
        self.lookback_days = lookback_days

    def _since(self) -> int:
        return int(time.time()) - self.lookback_days * DAY_SECONDS

    def _active_hours(self, participant_jid: str) -> Optional[DetectedPattern]:
        with self.session_factory() as db:
            timestamps = BehaviorPatternService(db).get_sender_timestamps(participant_jid, self._since())
        return detect_active_hours(participant_jid, timestamps)

    def _response_time(self, participant_jid: str) -> Optional[DetectedPattern]:
        with self.session_factory() as db:
            pairs = BehaviorPatternService(db).get_reply_pairs(participant_jid, self._since())
        return detect_response_time(participant_jid, pairs)

    def _message_frequency(self, participant_jid: str) -> Optional[DetectedPattern]:
        with self.session_factory() as db:
            timestamps = BehaviorPatternService(db).get_sender_timestamps(participant_jid, self._since())
        return detect_message_frequency(participant_jid, timestamps)

    async def detect_all_patterns(self, participant_jid: str) -> List[BehaviorPattern]:
        """Run the three detectors concurrently and upsert every non-empty result."""
        detectors: List[Callable[[str], Optional[DetectedPattern]]] = [
            self._active_hours,
            self._response_time,
            self._message_frequency,
        ]
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(detector, participant_jid) for detector in detectors),
            return_exceptions=True,
        )

        detected: List[DetectedPattern] = []
        for detector, outcome in zip(detectors, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Pattern detector %s failed for %s: %s",
                    detector.__name__,
                    participant_jid,
                    outcome,
                )
            elif outcome is not None:
                detected.append(outcome)

        saved: List[BehaviorPattern] = []
        if detected:
            with self.session_factory() as db:
                service = BehaviorPatternService(db)
                for pattern in detected:
                    row = service.upsert_pattern(pattern)
                    db.expunge(row)
                    saved.append(row)
        logger.debug("Detected %d patterns for %s", len(saved), participant_jid)
        return saved

    def get_patterns(self, participant_jid: str) -> List[BehaviorPattern]:
        with self.session_factory() as db:
            rows = BehaviorPatternService(db).get_patterns(participant_jid)
            for row in rows:
                db.expunge(row)
            return rows
