from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Collection, List, Optional, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from app.models.alert import Alert
from app.models.message import Message
from app.utils.db.upsert import insert_for


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AlertService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def sender_activity(
        self, since_ts: int, recent_since_ts: int
    ) -> List[Tuple[str, int, int]]:
        """(sender_jid, count since since_ts, count since recent_since_ts), bot excluded."""
        recent = func.sum(case((Message.timestamp >= recent_since_ts, 1), else_=0))
        rows = (
            self.db.query(Message.sender_jid, func.count(Message.id), recent)
            .filter(Message.timestamp >= since_ts, Message.is_from_me.is_(False))
            .group_by(Message.sender_jid)
            .all()
        )
        return [(jid, total, int(recent_count or 0)) for jid, total, recent_count in rows]

    def open_alert(
        self,
        alert_type: str,
        severity: str,
        participant_jid: str,
        title: str,
        message: str,
        extra: Optional[dict[str, Any]] = None,
        conversation_jid: Optional[str] = None,
    ) -> Optional[Alert]:
        """
        Insert an alert unless one is already open for (participant_jid, alert_type).

        Returns the new row, or None when an open alert already existed.
        """
        stmt = (
            insert_for(self.db, Alert)
            .values(
                alert_type=alert_type,
                severity=severity,
                participant_jid=participant_jid,
                conversation_jid=conversation_jid,
                title=title,
                message=message,
                extra=extra,
                is_read=False,
                triggered_at=_now(),
            )
            .on_conflict_do_nothing(
                index_elements=["participant_jid", "alert_type"],
                index_where=Alert.resolved_at.is_(None),
            )
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount != 1:
            return None
        return self.get_open_alert(participant_jid, alert_type)

    def resolve_cleared(self, alert_type: str, still_firing: Collection[str]) -> int:
        """Close open alerts of alert_type whose participant is no longer in still_firing."""
        stmt = update(Alert).where(
            Alert.alert_type == alert_type,
            Alert.resolved_at.is_(None),
        )
        if still_firing:
            stmt = stmt.where(Alert.participant_jid.notin_(list(still_firing)))
        result = self.db.execute(
            stmt.values(resolved_at=_now()).execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def get_open_alert(self, participant_jid: str, alert_type: str) -> Optional[Alert]:
        return (
            self.db.query(Alert)
            .filter(
                Alert.participant_jid == participant_jid,
                Alert.alert_type == alert_type,
                Alert.resolved_at.is_(None),
            )
            .first()
        )

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        return self.db.query(Alert).filter(Alert.id == alert_id).first()

    def list_alerts(self, unread_only: bool = False, limit: int = 50) -> List[Alert]:
        query = self.db.query(Alert)
        if unread_only:
            query = query.filter(Alert.is_read.is_(False))
        return query.order_by(Alert.triggered_at.desc(), Alert.id.desc()).limit(limit).all()

    def mark_as_read(self, alert_id: int) -> Optional[Alert]:
        alert = self.get_alert(alert_id)
        if alert is None:
            return None
        alert.is_read = True
        if alert.acknowledged_at is None:
            alert.acknowledged_at = _now()
        self.db.commit()
        self.db.refresh(alert)
        return alert

    def count_unread(self) -> int:
        return self.db.query(func.count(Alert.id)).filter(Alert.is_read.is_(False)).scalar() or 0
