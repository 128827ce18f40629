"""
Scheduled report generation and delivery.

The batch run is the one place where errors are caught and logged per item instead
of propagated: one broken repository or user never stops the rest of the run.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from common.logging import LoggingManager
from devinsight.dates import utcnow
from devinsight.errors import ValidationError
from devinsight.reports import REPORT_WINDOWS, build_report_data, report_window

logger = LoggingManager.get_logger('app.scheduler')


@dataclass
class BatchSummary:
    cadence: str
    started_at: datetime
    users: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cadence": self.cadence,
            "started_at": self.started_at.isoformat(),
            "users": self.users,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class ReportDispatcher:
    """Builds, renders and delivers reports, in batch or for a single (user, repository) pair."""

    def __init__(self, store, renderer, sender,
                 refresher: Optional[Callable] = None):
        """
        Args:
            store: persistence (``devinsight.store.Store``).
            renderer: ``ReportRenderer`` producing subject and bodies.
            sender: transport with ``send(to, subject, html, text)``.
            refresher: optional ``refresher(user, repository) -> repository`` run before a
                batch report is built, used to bring stale metrics up to date.
        """
        self.store = store
        self.renderer = renderer
        self.sender = sender
        self.refresher = refresher

    def deliver(self, user, repository, report_type: str = "weekly",
                now: Optional[datetime] = None):
        """Builds and sends one report. Errors propagate; a failed delivery is recorded first."""
        now = now or utcnow()
        start_date, end_date = report_window(report_type, now)
        report = self.store.create_report(
            user_id=user.id,
            repository_id=repository.id,
            report_type=report_type,
            start_date=start_date,
            end_date=end_date,
            data=build_report_data(repository.snapshot),
        )
        try:
            payload = self.renderer.payload(user, repository, report)
            html = self.renderer.render_html(payload)
            text = self.renderer.render_text(payload)
            self.sender.send(user.email, self.renderer.subject(payload), html, text)
        except Exception as e:
            self.store.set_report_status(report.id, "failed", error=str(e))
            raise
        return self.store.set_report_status(report.id, "sent", sent_at=utcnow())

    def run(self, cadence: str, now: Optional[datetime] = None) -> BatchSummary:
        """Sends reports to every user subscribed at ``cadence``. Never raises for per-item failures."""
        if cadence not in REPORT_WINDOWS:
            raise ValidationError(f"Invalid report cadence '{cadence}'")
        now = now or utcnow()
        summary = BatchSummary(cadence=cadence, started_at=now)

        users = self.store.users_with_reports(cadence)
        logger.info(f"Running {cadence} reports for {len(users)} user(s)")
        for user in users:
            summary.users += 1
            self._run_for_user(user, cadence, now, summary)

        logger.info(f"{cadence.capitalize()} report run finished: {summary.sent} sent, "
                    f"{summary.failed} failed, {summary.skipped} skipped")
        return summary

    def _run_for_user(self, user, cadence: str, now: datetime, summary: BatchSummary) -> None:
        log = LoggingManager.context_logger('app.scheduler', user=user.id)
        try:
            repositories = self.store.repositories_for_user(user.id)
        except Exception as e:
            log.bind(step="load_repositories").error(f"Could not load repositories: {e}", exc_info=True)
            summary.errors.append(f"user {user.id}: {e}")
            summary.skipped += 1
            return

        log.info(f"Generating reports for {user.username} ({len(repositories)} repositories)")
        sent_any = False
        for repository in repositories:
            repo_log = log.bind(repository=repository.full_name)
            step = "refresh"
            try:
                if self.refresher is not None:
                    repository = self.refresher(user, repository)
                step = "deliver"
                self.deliver(user, repository, report_type=cadence, now=now)
            except Exception as e:
                repo_log.bind(step=step).error(f"Report failed: {e}", exc_info=True)
                summary.errors.append(f"user {user.id} {repository.full_name} ({step}): {e}")
                if step == "refresh":
                    summary.skipped += 1
                else:
                    summary.failed += 1
                continue
            summary.sent += 1
            sent_any = True
            repo_log.info(f"Report sent to {user.email}")

        if sent_any:
            try:
                self.store.mark_reports_sent(user.id, now)
            except Exception as e:
                log.bind(step="mark_sent").error(f"Could not record last report time: {e}", exc_info=True)


class ReportScheduler:
    """Runs the report batch on a fixed period for a bounded duration."""

    def __init__(self, dispatcher: ReportDispatcher, cadence: str, interval: timedelta,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = utcnow):
        self.dispatcher = dispatcher
        self.cadence = cadence
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def run(self, duration: timedelta, max_runs: Optional[int] = None) -> List[BatchSummary]:
        end_time = self._clock() + duration
        summaries: List[BatchSummary] = []
        while self._clock() < end_time:
            summaries.append(self.dispatcher.run(self.cadence, now=self._clock()))
            if max_runs is not None and len(summaries) >= max_runs:
                break
            remaining = (end_time - self._clock()).total_seconds()
            if remaining <= 0:
                break
            wait = min(self.interval.total_seconds(), remaining)
            logger.info(f"Next {self.cadence} report run in {wait:.0f}s")
            self._sleep(wait)
        logger.info(f"Report scheduler finished after {len(summaries)} run(s)")
        return summaries
