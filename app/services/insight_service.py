from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy.orm import Session

from app.models.ai_insight import AIInsight


class InsightService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create_insight(
        self,
        insight_type: str,
        subject_type: str,
        subject_id: str,
        title: str,
        description: Optional[str] = None,
        severity: str = "info",
        confidence: float = 0.5,
        supporting_data: Optional[dict[str, Any]] = None,
    ) -> AIInsight:
        insight = AIInsight(
            insight_type=insight_type,
            subject_type=subject_type,
            subject_id=subject_id,
            title=title,
            description=description,
            severity=severity,
            confidence=confidence,
            supporting_data=supporting_data or {},
            is_active=True,
        )
        self.db.add(insight)
        self.db.commit()
        self.db.refresh(insight)
        return insight

    def list_insights(
        self,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[AIInsight]:
        query = self.db.query(AIInsight).filter(AIInsight.is_active.is_(True))
        if subject_type:
            query = query.filter(AIInsight.subject_type == subject_type)
        if subject_id:
            query = query.filter(AIInsight.subject_id == subject_id)
        return query.order_by(AIInsight.detected_at.desc(), AIInsight.id.desc()).limit(limit).all()
