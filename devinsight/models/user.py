"""SQLAlchemy model for DevInsight users."""
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from devinsight.dates import utcnow
from .base import Base, repository_subscribers
from .repository import Repository

REPORT_FREQUENCIES = ('daily', 'weekly', 'monthly')


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True)
    github_id = Column(String(64), nullable=False, unique=True)
    username = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    avatar_url = Column(String(511), nullable=True)
    access_token = Column(Text, nullable=False)  # cached GitHub credential

    email_reports_enabled = Column(Boolean, nullable=False, default=False)
    email_reports_frequency = Column(String(16), nullable=False, default='weekly', index=True)
    email_reports_last_sent = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    repositories = relationship(Repository, secondary=repository_subscribers, back_populates='subscribers')

    def report_settings(self) -> Dict[str, Any]:
        return {
            'enabled': self.email_reports_enabled,
            'frequency': self.email_reports_frequency,
            'last_sent': self.email_reports_last_sent.isoformat() if self.email_reports_last_sent else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Profile view; never includes the access token."""
        return {
            'id': self.id,
            'github_id': self.github_id,
            'username': self.username,
            'email': self.email,
            'avatar_url': self.avatar_url,
            'email_reports': self.report_settings(),
        }

    def __repr__(self):
        return f"<User(username='{self.username}', github_id='{self.github_id}')>"
