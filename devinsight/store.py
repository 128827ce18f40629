"""
Persistence for users, repositories, alerts and reports.

Every public method runs in its own session and commits or rolls back before
returning. Returned model instances are detached; their column attributes stay
loaded, relationships must not be touched outside the store.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from common.logging import LoggingManager
from devinsight.alerts import STATUS_ACTIVE, AlertFlags, AlertThresholds
from devinsight.errors import AuthorizationError, NotFoundError, ValidationError
from devinsight.github.models import GitHubRepo
from devinsight.metrics import MetricsSnapshot, RepositoryCounters
from devinsight.models.alert import Alert
from devinsight.models.base import Base, repository_subscribers
from devinsight.models.report import Report
from devinsight.models.repository import Repository
from devinsight.models.user import REPORT_FREQUENCIES, User

logger = LoggingManager.get_logger('app.store')


def build_engine(db_url: str):
    if db_url.startswith("sqlite") and ":memory:" in db_url:
        # One shared connection, otherwise every session would see its own empty database.
        return create_engine(db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(db_url)


class Store:
    def __init__(self, db_url: str, create_tables: bool = True):
        logger.info("Initializing database connection")
        self.engine = build_engine(db_url)
        if create_tables:
            Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _get(session: Session, model, entity_id: int, label: str):
        entity = session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        return entity

    # --- users -----------------------------------------------------------

    def upsert_user(self, github_id: str, username: str, access_token: str,
                    email: Optional[str] = None, avatar_url: Optional[str] = None) -> User:
        """Creates the user on first authentication, refreshes profile and credential afterwards."""
        with self.session() as session:
            user = session.query(User).filter_by(github_id=str(github_id)).first()
            if user is None:
                logger.info(f"Creating user {username} (github id {github_id})")
                user = User(github_id=str(github_id))
                session.add(user)
            user.username = username
            user.email = email
            user.avatar_url = avatar_url
            user.access_token = access_token
            session.flush()
            return user

    def get_user(self, user_id: int) -> User:
        with self.session() as session:
            return self._get(session, User, user_id, "User")

    def users_with_reports(self, frequency: str) -> List[User]:
        """Users with email reports enabled at the given cadence."""
        with self.session() as session:
            return (session.query(User)
                    .filter(User.email_reports_enabled.is_(True), User.email_reports_frequency == frequency)
                    .order_by(User.id)
                    .all())

    def update_report_settings(self, user_id: int, enabled: Optional[bool] = None,
                               frequency: Optional[str] = None) -> User:
        if frequency is not None and frequency not in REPORT_FREQUENCIES:
            raise ValidationError(f"Invalid report frequency '{frequency}'")
        with self.session() as session:
            user = self._get(session, User, user_id, "User")
            if enabled is not None:
                user.email_reports_enabled = enabled
            if frequency is not None:
                user.email_reports_frequency = frequency
            return user

    def mark_reports_sent(self, user_id: int, sent_at: datetime) -> None:
        with self.session() as session:
            self._get(session, User, user_id, "User").email_reports_last_sent = sent_at

    def delete_user(self, user_id: int) -> List[str]:
        """Deletes the user, their alerts and reports, and every repository they were the last subscriber of.

        Returns the full names of the deleted repositories.
        """
        with self.session() as session:
            user = self._get(session, User, user_id, "User")
            orphaned = []
            for repo in list(user.repositories):
                repo.subscribers.remove(user)
                if not repo.subscribers:
                    orphaned.append(repo)
            session.query(Alert).filter(Alert.user_id == user_id).delete(synchronize_session=False)
            session.query(Report).filter(Report.user_id == user_id).delete(synchronize_session=False)
            deleted = [repo.full_name for repo in orphaned]
            for repo in orphaned:
                self._delete_repository(session, repo)
            session.delete(user)
            logger.info(f"Deleted user {user_id}; removed orphaned repositories: {deleted}")
            return deleted

    # --- repositories ----------------------------------------------------

    def get_repository(self, repository_id: int) -> Repository:
        with self.session() as session:
            return self._get(session, Repository, repository_id, "Repository")

    def find_repository(self, full_name: str) -> Optional[Repository]:
        with self.session() as session:
            return session.query(Repository).filter_by(full_name=full_name).first()

    def repositories_for_user(self, user_id: int) -> List[Repository]:
        with self.session() as session:
            return (session.query(Repository)
                    .join(repository_subscribers, repository_subscribers.c.repository_id == Repository.id)
                    .filter(repository_subscribers.c.user_id == user_id)
                    .order_by(Repository.full_name)
                    .all())

    def subscriber_ids(self, repository_id: int) -> List[int]:
        with self.session() as session:
            rows = (session.query(repository_subscribers.c.user_id)
                    .filter(repository_subscribers.c.repository_id == repository_id)
                    .order_by(repository_subscribers.c.user_id)
                    .all())
            return [row[0] for row in rows]

    def is_subscriber(self, user_id: int, repository_id: int) -> bool:
        return user_id in self.subscriber_ids(repository_id)

    def connect_repository(self, user_id: int, full_name: str,
                           github_repo: Optional[GitHubRepo] = None) -> Repository:
        """Subscribes the user to the repository.

        ``github_repo`` is only needed when the repository is not tracked yet; it is
        created from it on first connect.
        """
        try:
            return self._connect_repository(user_id, full_name, github_repo)
        except IntegrityError:
            # Another request created the row between our lookup and commit.
            logger.info(f"Repository {full_name} was created concurrently, subscribing to it")
            return self._connect_repository(user_id, full_name)

    @staticmethod
    def _find_repository(session: Session, full_name: str) -> Optional[Repository]:
        return session.query(Repository).filter_by(full_name=full_name).first()

    def _connect_repository(self, user_id: int, full_name: str,
                            github_repo: Optional[GitHubRepo] = None) -> Repository:
        with self.session() as session:
            user = self._get(session, User, user_id, "User")
            repo = self._find_repository(session, full_name)
            if repo is None:
                if github_repo is None:
                    raise NotFoundError(f"Repository {full_name} not found")
                logger.info(f"Creating repository {github_repo.full_name}")
                repo = Repository(
                    owner=github_repo.owner,
                    name=github_repo.name,
                    full_name=github_repo.full_name,
                    description=github_repo.description,
                    url=github_repo.html_url,
                    api_url=github_repo.url,
                    default_branch=github_repo.default_branch,
                    stars=github_repo.stargazers_count,
                    forks=github_repo.forks_count,
                    watchers=github_repo.watchers_count,
                    open_issues=github_repo.open_issues_count,
                )
                session.add(repo)
            elif user in repo.subscribers:
                raise ValidationError(f"Repository {full_name} already connected")
            repo.subscribers.append(user)
            session.flush()
            return repo

    def disconnect_repository(self, user_id: int, repository_id: int) -> bool:
        """Unsubscribes the user. Returns True when the repository was deleted as a result."""
        with self.session() as session:
            user = self._get(session, User, user_id, "User")
            repo = self._get(session, Repository, repository_id, "Repository")
            if user not in repo.subscribers:
                raise AuthorizationError(f"User {user_id} is not subscribed to repository {repository_id}")
            repo.subscribers.remove(user)
            if repo.subscribers:
                return False
            self._delete_repository(session, repo)
            logger.info(f"Deleted repository {repo.full_name}: no subscribers left")
            return True

    @staticmethod
    def _delete_repository(session: Session, repo: Repository) -> None:
        session.query(Alert).filter(Alert.repository_id == repo.id).delete(synchronize_session=False)
        session.query(Report).filter(Report.repository_id == repo.id).delete(synchronize_session=False)
        session.delete(repo)

    def save_snapshot(self, repository_id: int, snapshot: MetricsSnapshot, counters: RepositoryCounters,
                      flags: AlertFlags, fetched_at: datetime) -> Repository:
        """Replaces metrics, counters, alert flags and the fetch timestamp in one write."""
        with self.session() as session:
            repo = self._get(session, Repository, repository_id, "Repository")
            repo.metrics = snapshot.to_dict()
            repo.stars = counters.stars
            repo.forks = counters.forks
            repo.watchers = counters.watchers
            repo.open_issues = counters.open_issues
            repo.alert_no_activity = flags.no_activity
            repo.alert_long_open_prs = flags.long_open_prs
            repo.alert_commit_drops = flags.commit_drops
            repo.last_fetched = fetched_at
            return repo

    def save_thresholds(self, repository_id: int, thresholds: AlertThresholds) -> Repository:
        with self.session() as session:
            repo = self._get(session, Repository, repository_id, "Repository")
            repo.no_activity_days = thresholds.no_activity_days
            repo.long_open_prs_days = thresholds.long_open_prs_days
            repo.commit_drop_percentage = thresholds.commit_drop_percentage
            return repo

    # --- alerts ----------------------------------------------------------

    def find_active_alert(self, user_id: int, repository_id: int, alert_type: str) -> Optional[Alert]:
        with self.session() as session:
            return (session.query(Alert)
                    .filter_by(user_id=user_id, repository_id=repository_id,
                               type=alert_type, status=STATUS_ACTIVE)
                    .first())

    def create_alert(self, user_id: int, repository_id: int, alert_type: str, message: str,
                     threshold: float, value: float) -> Alert:
        with self.session() as session:
            alert = Alert(user_id=user_id, repository_id=repository_id, type=alert_type,
                          message=message, threshold=threshold, value=value, status=STATUS_ACTIVE)
            session.add(alert)
            session.flush()
            return alert

    def get_alert(self, alert_id: int) -> Alert:
        with self.session() as session:
            return self._get(session, Alert, alert_id, "Alert")

    def list_alerts(self, user_id: int, status: Optional[str] = None) -> List[Alert]:
        with self.session() as session:
            query = session.query(Alert).filter(Alert.user_id == user_id)
            if status:
                query = query.filter(Alert.status == status)
            return query.order_by(Alert.created_at.desc(), Alert.id.desc()).all()

    def set_alert_status(self, alert_id: int, status: str, resolved_at: Optional[datetime] = None) -> Alert:
        with self.session() as session:
            alert = self._get(session, Alert, alert_id, "Alert")
            alert.status = status
            if resolved_at is not None:
                alert.resolved_at = resolved_at
            return alert

    # --- reports ---------------------------------------------------------

    def create_report(self, user_id: int, repository_id: int, report_type: str,
                      start_date: datetime, end_date: datetime, data: dict) -> Report:
        with self.session() as session:
            report = Report(user_id=user_id, repository_id=repository_id, report_type=report_type,
                            start_date=start_date, end_date=end_date, data=data, status='pending')
            session.add(report)
            session.flush()
            return report

    def set_report_status(self, report_id: int, status: str, sent_at: Optional[datetime] = None,
                          error: Optional[str] = None) -> Report:
        with self.session() as session:
            report = self._get(session, Report, report_id, "Report")
            report.status = status
            report.sent_at = sent_at
            report.error = error
            return report

    def get_report(self, report_id: int) -> Report:
        with self.session() as session:
            return self._get(session, Report, report_id, "Report")

    def list_reports(self, user_id: int) -> List[Report]:
        with self.session() as session:
            return (session.query(Report)
                    .filter(Report.user_id == user_id)
                    .order_by(Report.created_at.desc(), Report.id.desc())
                    .all())

    def ping(self) -> None:
        with self.session() as session:
            session.execute(text("SELECT 1"))
