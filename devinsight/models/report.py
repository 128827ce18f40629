"""SQLAlchemy model for generated reports."""
from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from devinsight.dates import utcnow
from .base import Base

REPORT_TYPES = ('daily', 'weekly', 'monthly')
REPORT_STATUSES = ('pending', 'sent', 'failed')


class Report(Base):
    """Metrics summary for one repository and window, delivered to one user."""

    __tablename__ = 'reports'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    repository_id = Column(Integer, ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False)
    report_type = Column(String(16), nullable=False, default='weekly')
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    data = Column(JSON, nullable=False)  # metrics snapshot payload
    status = Column(String(16), nullable=False, default='pending')  # 'pending', 'sent', 'failed'
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'repository_id': self.repository_id,
            'report_type': self.report_type,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'data': self.data,
            'status': self.status,
            'error': self.error,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
