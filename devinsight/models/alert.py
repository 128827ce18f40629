"""SQLAlchemy model for alerts."""
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text

from devinsight.dates import utcnow
from .base import Base


class Alert(Base):
    """An alert raised for one subscriber of a repository.

    Alerts are never deleted by the alert lifecycle; they move from 'active' to
    'resolved' or 'dismissed'.
    """

    __tablename__ = 'alerts'
    __table_args__ = (
        Index('idx_alerts_user_repo_type_status', 'user_id', 'repository_id', 'type', 'status'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    repository_id = Column(Integer, ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False)
    type = Column(String(32), nullable=False)  # 'noActivity', 'longOpenPRs', 'commitDrops'
    message = Column(Text, nullable=False)
    threshold = Column(Float, nullable=False)
    value = Column(Float, nullable=False)
    status = Column(String(16), nullable=False, default='active')  # 'active', 'resolved', 'dismissed'

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'repository_id': self.repository_id,
            'type': self.type,
            'message': self.message,
            'threshold': self.threshold,
            'value': self.value,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
        }
