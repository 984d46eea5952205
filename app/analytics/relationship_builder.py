"""
Pairwise relationship strength.

An interaction is a message by one participant followed, in the same
conversation, by a message from the other within the window. Strength is
the interaction count over the lookback, saturating at 1.0.
"""

from __future__ import annotations

import bisect
import logging
import time
from collections import defaultdict
from typing import Any, Iterable, Optional, Tuple

from app.db import SessionFactory
from app.services.message_service import epoch_to_datetime
from app.services.relationship_service import RelationshipService, canonical_pair

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600
DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_SATURATION = 50
GRAPH_MIN_STRENGTH = 0.1


def count_interactions(
    messages: Iterable[Tuple[str, str, int]],
    jid_a: str,
    jid_b: str,
    window_seconds: int = DEFAULT_WINDOW_SECONDS,
) -> Tuple[int, Optional[int]]:
    """
    Count interactions between jid_a and jid_b.

    messages are (conversation_jid, sender_jid, timestamp). Returns the count
    and the timestamp of the latest reply that closed an interaction.
    """
    per_conversation: dict[str, dict[str, list[int]]] = defaultdict(
        lambda: {jid_a: [], jid_b: []}
    )
    for conversation_jid, sender_jid, ts in messages:
        if sender_jid in (jid_a, jid_b):
            per_conversation[conversation_jid][sender_jid].append(ts)

    count = 0
    last: Optional[int] = None
    for by_sender in per_conversation.values():
        for sender, other in ((jid_a, jid_b), (jid_b, jid_a)):
            replies = sorted(by_sender[other])
            for ts in by_sender[sender]:
                i = bisect.bisect_right(replies, ts)
                if i < len(replies) and replies[i] - ts <= window_seconds:
                    count += 1
                    if last is None or replies[i] > last:
                        last = replies[i]
    return count, last


class RelationshipBuilder:
    def __init__(
        self,
        session_factory: SessionFactory,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        saturation: int = DEFAULT_SATURATION,
    ) -> None:
        self.session_factory = session_factory
        self.window_seconds = window_seconds
        self.lookback_days = lookback_days
        self.saturation = saturation

    def strength_for(self, interactions: int) -> float:
        return min(interactions / self.saturation, 1.0)

    async def update_relationship(self, jid_a: str, jid_b: str) -> None:
        """Recompute and upsert the pair. Self-pairs are ignored; errors are logged."""
        if jid_a == jid_b:
            return
        a, b = canonical_pair(jid_a, jid_b)
        since_ts = int(time.time()) - self.lookback_days * 86400
        try:
            with self.session_factory() as db:
                service = RelationshipService(db)
                messages = service.get_pair_messages(a, b, since_ts)
                interactions, last_ts = count_interactions(
                    messages, a, b, self.window_seconds
                )
                service.upsert_relationship(
                    a,
                    b,
                    strength=self.strength_for(interactions),
                    total_interactions=interactions,
                    last_interaction_at=epoch_to_datetime(last_ts) if last_ts else None,
                )
        except Exception as e:
            logger.exception("Failed to update relationship %s <-> %s: %s", a, b, e)

    def build_graph(self, conversation_jid: Optional[str] = None) -> dict[str, Any]:
        """Nodes are participants; edges are relationships stronger than GRAPH_MIN_STRENGTH."""
        with self.session_factory() as db:
            service = RelationshipService(db)
            participants = service.get_graph_nodes(conversation_jid)
            jids = [p.jid for p in participants] if conversation_jid else None
            edges = service.get_edges(GRAPH_MIN_STRENGTH, jids=jids)
            return {
                "nodes": [
                    {"id": p.jid, "name": p.name, "message_count": p.message_count}
                    for p in participants
                ],
                "edges": [
                    {
                        "source": e.participant_a_jid,
                        "target": e.participant_b_jid,
                        "strength": e.relationship_strength,
                        "interactions": e.total_interactions,
                    }
                    for e in edges
                ],
            }
