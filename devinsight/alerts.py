"""
Alert evaluation.

Rules run right after every metrics refresh, on the newest snapshot only. A rule that
fires raises an active alert for each subscriber that has none of that type for the
repository yet. A rule that stops firing leaves existing alerts alone: they leave the
active state only through an explicit status change by their owner.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from common.logging import LoggingManager
from devinsight.dates import as_naive_utc, utcnow
from devinsight.errors import ValidationError
from devinsight.github.models import GitHubPullRequest
from devinsight.metrics import MetricsSnapshot

logger = LoggingManager.get_logger('app.alerts')

NO_ACTIVITY = "noActivity"
LONG_OPEN_PRS = "longOpenPRs"
COMMIT_DROPS = "commitDrops"
ALERT_TYPES = (NO_ACTIVITY, LONG_OPEN_PRS, COMMIT_DROPS)

STATUS_ACTIVE = "active"
STATUS_RESOLVED = "resolved"
STATUS_DISMISSED = "dismissed"
ALERT_STATUSES = (STATUS_ACTIVE, STATUS_RESOLVED, STATUS_DISMISSED)

DEFAULT_NO_ACTIVITY_DAYS = 7
DEFAULT_LONG_OPEN_PRS_DAYS = 14
DEFAULT_COMMIT_DROP_PERCENTAGE = 70


@dataclass(frozen=True)
class AlertThresholds:
    no_activity_days: int = DEFAULT_NO_ACTIVITY_DAYS
    long_open_prs_days: int = DEFAULT_LONG_OPEN_PRS_DAYS
    commit_drop_percentage: int = DEFAULT_COMMIT_DROP_PERCENTAGE

    def __post_init__(self):
        if self.no_activity_days < 1:
            raise ValidationError("noActivityDays must be at least 1")
        if self.long_open_prs_days < 0:
            raise ValidationError("longOpenPRsDays must not be negative")
        if not 0 < self.commit_drop_percentage <= 100:
            raise ValidationError("commitDropPercentage must be between 1 and 100")

    @classmethod
    def from_values(cls, no_activity_days: Optional[int] = None,
                    long_open_prs_days: Optional[int] = None,
                    commit_drop_percentage: Optional[int] = None) -> "AlertThresholds":
        """Thresholds with defaults filled in for missing values."""
        return cls(
            no_activity_days=DEFAULT_NO_ACTIVITY_DAYS if no_activity_days is None else no_activity_days,
            long_open_prs_days=DEFAULT_LONG_OPEN_PRS_DAYS if long_open_prs_days is None else long_open_prs_days,
            commit_drop_percentage=(DEFAULT_COMMIT_DROP_PERCENTAGE if commit_drop_percentage is None
                                    else commit_drop_percentage),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "noActivityDays": self.no_activity_days,
            "longOpenPRsDays": self.long_open_prs_days,
            "commitDropPercentage": self.commit_drop_percentage,
        }


@dataclass(frozen=True)
class AlertFinding:
    type: str
    triggered: bool
    value: float
    threshold: float
    message: str


@dataclass(frozen=True)
class AlertFlags:
    """Latest evaluation result stored on the repository."""
    no_activity: bool = False
    long_open_prs: bool = False
    commit_drops: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            NO_ACTIVITY: self.no_activity,
            LONG_OPEN_PRS: self.long_open_prs,
            COMMIT_DROPS: self.commit_drops,
        }


@dataclass(frozen=True)
class AlertEvaluation:
    findings: Dict[str, AlertFinding]

    def triggered(self) -> List[AlertFinding]:
        return [f for f in self.findings.values() if f.triggered]

    def flags(self, previous: Optional[AlertFlags] = None) -> AlertFlags:
        """Status triple; a rule that could not be evaluated keeps its previous value."""
        previous = previous or AlertFlags()

        def flag(alert_type: str, old: bool) -> bool:
            finding = self.findings.get(alert_type)
            return finding.triggered if finding is not None else old

        return AlertFlags(
            no_activity=flag(NO_ACTIVITY, previous.no_activity),
            long_open_prs=flag(LONG_OPEN_PRS, previous.long_open_prs),
            commit_drops=flag(COMMIT_DROPS, previous.commit_drops),
        )


def is_commit_drop(previous: int, current: int, drop_percentage: int = DEFAULT_COMMIT_DROP_PERCENTAGE) -> bool:
    """True when the current week fell more than ``drop_percentage`` below a non-zero previous week."""
    if previous <= 0:
        return False
    if current == 0:
        return True
    # current / previous < (100 - pct) / 100, kept in integers.
    return current * 100 < previous * (100 - drop_percentage)


class AlertEvaluator:
    """Evaluates the alert rules for a freshly computed snapshot."""

    def evaluate(self, snapshot: MetricsSnapshot,
                 open_pull_requests: Sequence[GitHubPullRequest] = (),
                 thresholds: Optional[AlertThresholds] = None,
                 now: Optional[datetime] = None) -> AlertEvaluation:
        thresholds = thresholds or AlertThresholds()
        now = as_naive_utc(now) if now else utcnow()
        findings = {
            NO_ACTIVITY: self._no_activity(snapshot, thresholds),
            LONG_OPEN_PRS: self._long_open_prs(open_pull_requests, thresholds, now),
        }
        commit_drops = self._commit_drops(snapshot, thresholds)
        if commit_drops is not None:
            findings[COMMIT_DROPS] = commit_drops
        return AlertEvaluation(findings=findings)

    @staticmethod
    def _no_activity(snapshot: MetricsSnapshot, thresholds: AlertThresholds) -> AlertFinding:
        weeks = math.ceil(thresholds.no_activity_days / 7)
        recent = snapshot.weekly_commits[-weeks:]
        triggered = bool(recent) and len(recent) == weeks and all(count == 0 for count in recent)
        return AlertFinding(
            type=NO_ACTIVITY,
            triggered=triggered,
            value=float(sum(recent)),
            threshold=float(thresholds.no_activity_days),
            message=f"No commits in the last {thresholds.no_activity_days} days",
        )

    @staticmethod
    def _long_open_prs(open_pull_requests: Sequence[GitHubPullRequest],
                       thresholds: AlertThresholds, now: datetime) -> AlertFinding:
        ages = [
            (now - as_naive_utc(pr.created_at)).total_seconds() / 86400.0
            for pr in open_pull_requests
            if pr.created_at is not None
        ]
        oldest = max(ages) if ages else 0.0
        triggered = oldest > thresholds.long_open_prs_days
        stale_count = sum(1 for age in ages if age > thresholds.long_open_prs_days)
        return AlertFinding(
            type=LONG_OPEN_PRS,
            triggered=triggered,
            value=round(oldest, 2),
            threshold=float(thresholds.long_open_prs_days),
            message=(f"{stale_count} pull request(s) open longer than "
                     f"{thresholds.long_open_prs_days} days (oldest: {oldest:.0f} days)"),
        )

    @staticmethod
    def _commit_drops(snapshot: MetricsSnapshot, thresholds: AlertThresholds) -> Optional[AlertFinding]:
        previous = snapshot.previous_week_commits
        current = snapshot.current_week_commits
        if previous is None:
            # Fewer than two weeks of data: not evaluated.
            return None
        drop = (previous - current) * 100.0 / previous if previous > 0 else 0.0
        return AlertFinding(
            type=COMMIT_DROPS,
            triggered=is_commit_drop(previous, current, thresholds.commit_drop_percentage),
            value=round(drop, 2),
            threshold=float(thresholds.commit_drop_percentage),
            message=f"Weekly commits dropped from {previous} to {current} ({drop:.0f}% drop)",
        )

    def raise_alerts(self, store, repository_id: int, subscriber_ids: Iterable[int],
                     evaluation: AlertEvaluation) -> list:
        """Creates active alerts for triggered rules where no active alert of that type exists yet."""
        created = []
        for finding in evaluation.triggered():
            for user_id in subscriber_ids:
                if store.find_active_alert(user_id, repository_id, finding.type) is not None:
                    continue
                alert = store.create_alert(
                    user_id=user_id,
                    repository_id=repository_id,
                    alert_type=finding.type,
                    message=finding.message,
                    threshold=finding.threshold,
                    value=finding.value,
                )
                logger.info(f"Raised {finding.type} alert {alert.id} for repository {repository_id} (user {user_id})")
                created.append(alert)
        return created


def validate_transition(current_status: str, new_status: str) -> None:
    """Alerts only move out of ``active``; resolved and dismissed are terminal."""
    if new_status not in ALERT_STATUSES:
        raise ValidationError(f"Invalid status '{new_status}'")
    if current_status != STATUS_ACTIVE or new_status == STATUS_ACTIVE:
        raise ValidationError(f"Cannot change alert status from '{current_status}' to '{new_status}'")
