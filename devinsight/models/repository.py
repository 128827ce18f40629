"""SQLAlchemy model for connected GitHub repositories."""
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from devinsight.alerts import AlertFlags, AlertThresholds
from devinsight.dates import utcnow
from devinsight.metrics import MetricsSnapshot
from .base import Base, repository_subscribers


class Repository(Base):
    __tablename__ = 'repositories'
    id = Column(Integer, primary_key=True)
    owner = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    full_name = Column(String(511), nullable=False, unique=True)  # "owner/name"
    description = Column(Text, nullable=True)
    url = Column(String(511), nullable=True)  # HTML URL
    api_url = Column(String(511), nullable=True)
    default_branch = Column(String(255), nullable=False, default='main')

    stars = Column(Integer, nullable=False, default=0)
    forks = Column(Integer, nullable=False, default=0)
    watchers = Column(Integer, nullable=False, default=0)
    open_issues = Column(Integer, nullable=False, default=0)

    metrics = Column(JSON, nullable=False, default=lambda: MetricsSnapshot().to_dict())
    last_fetched = Column(DateTime, nullable=True, index=True)  # None until the first refresh

    alert_no_activity = Column(Boolean, nullable=False, default=False)
    alert_long_open_prs = Column(Boolean, nullable=False, default=False)
    alert_commit_drops = Column(Boolean, nullable=False, default=False)

    no_activity_days = Column(Integer, nullable=True)
    long_open_prs_days = Column(Integer, nullable=True)
    commit_drop_percentage = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    subscribers = relationship('User', secondary=repository_subscribers, back_populates='repositories')

    @property
    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot.from_dict(self.metrics)

    @property
    def alert_flags(self) -> AlertFlags:
        return AlertFlags(
            no_activity=bool(self.alert_no_activity),
            long_open_prs=bool(self.alert_long_open_prs),
            commit_drops=bool(self.alert_commit_drops),
        )

    @property
    def thresholds(self) -> AlertThresholds:
        return AlertThresholds.from_values(
            no_activity_days=self.no_activity_days,
            long_open_prs_days=self.long_open_prs_days,
            commit_drop_percentage=self.commit_drop_percentage,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner': self.owner,
            'name': self.name,
            'full_name': self.full_name,
            'description': self.description,
            'url': self.url,
            'default_branch': self.default_branch,
            'stars': self.stars,
            'forks': self.forks,
            'watchers': self.watchers,
            'open_issues': self.open_issues,
            'last_fetched': self.last_fetched.isoformat() if self.last_fetched else None,
            'metrics': self.snapshot.to_dict(),
            'alerts': self.alert_flags.to_dict(),
            'thresholds': self.thresholds.to_dict(),
        }

    def __repr__(self):
        return f"<Repository(full_name='{self.full_name}', last_fetched='{self.last_fetched}')>"
