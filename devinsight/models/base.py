"""Declarative base and the subscription association shared by the models."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Table
from sqlalchemy.orm import declarative_base

from devinsight.dates import utcnow

Base = declarative_base()

# A user connecting a repository subscribes to it; the repository lives while it has subscribers.
repository_subscribers = Table(
    'repository_subscribers',
    Base.metadata,
    Column('repository_id', Integer, ForeignKey('repositories.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    Column('created_at', DateTime, nullable=False, default=utcnow),
)
