"""
Application service: the operations the HTTP API and the CLI expose.

Every operation takes the acting user explicitly and checks that the user subscribes
to the repository, or owns the alert or report, it touches.
"""
import threading
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from common.logging import LoggingManager
from devinsight.alerts import STATUS_ACTIVE, AlertEvaluator, AlertThresholds, validate_transition
from devinsight.dates import utcnow
from devinsight.errors import AuthorizationError, ValidationError
from devinsight.github.client import GitHubDataClient
from devinsight.github.models import GitHubUser
from devinsight.metrics import DEFAULT_MAX_AGE, MetricsAggregator, MetricsSnapshot, is_stale
from devinsight.notifications import EmailSender
from devinsight.reports import ReportRenderer, export_filename, export_report_csv
from devinsight.scheduler import ReportDispatcher
from devinsight.store import Store

logger = LoggingManager.get_logger('app.service')


class DevInsightService:
    def __init__(self, store, github_client, dispatcher=None,
                 aggregator: Optional[MetricsAggregator] = None,
                 evaluator: Optional[AlertEvaluator] = None,
                 max_age: timedelta = DEFAULT_MAX_AGE):
        self.store = store
        self.github = github_client
        self.aggregator = aggregator or MetricsAggregator(github_client)
        self.evaluator = evaluator or AlertEvaluator()
        self.dispatcher = dispatcher
        self.max_age = max_age
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "DevInsightService":
        """Wires store, GitHub client and email delivery from configuration."""
        store = Store(config.database_url)
        github_client = GitHubDataClient.from_config(config)
        service = cls(store, github_client, max_age=timedelta(minutes=config.metrics_max_age_minutes))
        service.dispatcher = ReportDispatcher(
            store,
            ReportRenderer(config.frontend_url),
            EmailSender.from_config(config),
            refresher=service.refresh_if_stale,
        )
        return service

    # --- users -----------------------------------------------------------

    def upsert_user(self, github_user: GitHubUser, access_token: str):
        return self.store.upsert_user(
            github_id=str(github_user.id),
            username=github_user.login,
            access_token=access_token,
            email=github_user.email,
            avatar_url=github_user.avatar_url,
        )

    def authenticate(self, access_token: str):
        """Looks up the token's GitHub profile and creates or refreshes the matching user."""
        github_user = self.github.get_user(access_token)
        user = self.upsert_user(github_user, access_token)
        logger.info(f"Authenticated {user.username} (user {user.id})")
        return user

    def get_user(self, user_id: int):
        return self.store.get_user(user_id)

    def delete_user(self, user_id: int) -> List[str]:
        repository_ids = {repo.full_name: repo.id for repo in self.store.repositories_for_user(user_id)}
        deleted = self.store.delete_user(user_id)
        for full_name in deleted:
            self._forget_lock(repository_ids[full_name])
        logger.info(f"Deleted user {user_id}")
        return deleted

    # --- repositories ----------------------------------------------------

    def list_github_repositories(self, user_id: int) -> List[Dict[str, Any]]:
        """The user's GitHub repositories, each flagged with whether it is connected here."""
        user = self.store.get_user(user_id)
        repos = self.github.get_user_repos(user.access_token)
        connected = {repo.full_name for repo in self.store.repositories_for_user(user_id)}
        return [dict(asdict(repo), connected=repo.full_name in connected) for repo in repos]

    def connect_repository(self, user_id: int, owner: str, name: str):
        if not owner or not name:
            raise ValidationError("Owner and name are required")
        user = self.store.get_user(user_id)
        full_name = f"{owner}/{name}"
        github_repo = None
        if self.store.find_repository(full_name) is None:
            github_repo = self.github.get_repo(user.access_token, owner, name)
            full_name = github_repo.full_name
        repo = self.store.connect_repository(user_id, full_name, github_repo)
        logger.info(f"User {user_id} connected {repo.full_name}")
        return repo

    def disconnect_repository(self, user_id: int, repository_id: int) -> bool:
        deleted = self.store.disconnect_repository(user_id, repository_id)
        if deleted:
            self._forget_lock(repository_id)
        logger.info(f"User {user_id} disconnected repository {repository_id}"
                    f"{' (repository deleted)' if deleted else ''}")
        return deleted

    def list_connected_repositories(self, user_id: int):
        self.store.get_user(user_id)
        return self.store.repositories_for_user(user_id)

    def get_repository(self, user_id: int, repository_id: int, now: Optional[datetime] = None):
        """Repository details, refreshed first when its metrics are stale."""
        repo = self._authorized_repository(user_id, repository_id)
        if is_stale(repo.last_fetched, now, self.max_age):
            self.refresh_repository(user_id, repository_id, now=now)
            repo = self.store.get_repository(repository_id)
        return repo

    def refresh_repository(self, user_id: int, repository_id: int, force: bool = False,
                           now: Optional[datetime] = None) -> MetricsSnapshot:
        """Refreshes metrics and evaluates alerts, unless the cached snapshot is still fresh.

        Callers racing on the same repository wait for the first refresh and then get
        its result from the cache.
        """
        repo = self._authorized_repository(user_id, repository_id)
        if not force and not is_stale(repo.last_fetched, now, self.max_age):
            return repo.snapshot

        with self._lock_for(repository_id):
            repo = self.store.get_repository(repository_id)
            if not force and not is_stale(repo.last_fetched, now, self.max_age):
                logger.debug(f"{repo.full_name} was refreshed while waiting; using cached metrics")
                return repo.snapshot

            user = self.store.get_user(user_id)
            result = self.aggregator.refresh(repo, user.access_token, now=now)
            evaluation = self.evaluator.evaluate(
                result.snapshot,
                open_pull_requests=result.open_pull_requests,
                thresholds=repo.thresholds,
                now=result.fetched_at,
            )
            self.store.save_snapshot(
                repository_id,
                result.snapshot,
                result.counters,
                evaluation.flags(repo.alert_flags),
                result.fetched_at,
            )
            self.evaluator.raise_alerts(self.store, repository_id,
                                        self.store.subscriber_ids(repository_id), evaluation)
            logger.info(f"Refreshed {repo.full_name}: {result.snapshot.total_commits} commits, "
                        f"{len(evaluation.triggered())} rule(s) triggered")
            return result.snapshot

    def refresh_if_stale(self, user, repository):
        """Batch hook: brings a repository up to date for a report and returns it."""
        if is_stale(repository.last_fetched, None, self.max_age):
            self.refresh_repository(user.id, repository.id)
            return self.store.get_repository(repository.id)
        return repository

    def _lock_for(self, repository_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(repository_id, threading.Lock())

    def _forget_lock(self, repository_id: int) -> None:
        with self._locks_guard:
            self._locks.pop(repository_id, None)

    def _authorized_repository(self, user_id: int, repository_id: int):
        repo = self.store.get_repository(repository_id)
        if not self.store.is_subscriber(user_id, repository_id):
            raise AuthorizationError(f"Not authorized to access repository {repository_id}")
        return repo

    # --- alerts ----------------------------------------------------------

    def list_alerts(self, user_id: int, status: Optional[str] = STATUS_ACTIVE):
        return self.store.list_alerts(user_id, status=status)

    def get_alert(self, user_id: int, alert_id: int):
        alert = self.store.get_alert(alert_id)
        if alert.user_id != user_id:
            raise AuthorizationError(f"Not authorized to access alert {alert_id}")
        return alert

    def update_alert_status(self, user_id: int, alert_id: int, status: str,
                            now: Optional[datetime] = None):
        alert = self.get_alert(user_id, alert_id)
        validate_transition(alert.status, status)
        logger.info(f"Alert {alert_id}: {alert.status} -> {status}")
        return self.store.set_alert_status(alert_id, status, resolved_at=now or utcnow())

    def configure_alert_thresholds(self, user_id: int, repository_id: int,
                                   no_activity_days: Optional[int] = None,
                                   long_open_prs_days: Optional[int] = None,
                                   commit_drop_percentage: Optional[int] = None) -> AlertThresholds:
        """Updates the given thresholds; omitted values keep their current setting."""
        repo = self._authorized_repository(user_id, repository_id)
        current = repo.thresholds
        thresholds = AlertThresholds(
            no_activity_days=current.no_activity_days if no_activity_days is None else no_activity_days,
            long_open_prs_days=current.long_open_prs_days if long_open_prs_days is None else long_open_prs_days,
            commit_drop_percentage=(current.commit_drop_percentage if commit_drop_percentage is None
                                    else commit_drop_percentage),
        )
        return self.store.save_thresholds(repository_id, thresholds).thresholds

    # --- reports ---------------------------------------------------------

    def get_report_settings(self, user_id: int) -> Dict[str, Any]:
        return self.store.get_user(user_id).report_settings()

    def update_report_settings(self, user_id: int, enabled: Optional[bool] = None,
                               frequency: Optional[str] = None) -> Dict[str, Any]:
        return self.store.update_report_settings(user_id, enabled=enabled, frequency=frequency).report_settings()

    def list_reports(self, user_id: int):
        return self.store.list_reports(user_id)

    def get_report(self, user_id: int, report_id: int):
        report = self.store.get_report(report_id)
        if report.user_id != user_id:
            raise AuthorizationError(f"Not authorized to access report {report_id}")
        return report

    def generate_report(self, user_id: int, repository_id: int, report_type: str = "weekly",
                        now: Optional[datetime] = None):
        """Builds and sends a report right away. Delivery errors reach the caller."""
        if self.dispatcher is None:
            raise ValidationError("Report delivery is not configured")
        repo = self._authorized_repository(user_id, repository_id)
        user = self.store.get_user(user_id)
        return self.dispatcher.deliver(user, repo, report_type=report_type, now=now)

    def export_report(self, user_id: int, report_id: int):
        """(filename, csv text) of a report."""
        report = self.get_report(user_id, report_id)
        repo = self.store.get_repository(report.repository_id)
        return export_filename(report, repo), export_report_csv(report, repo)
