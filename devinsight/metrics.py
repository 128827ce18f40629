"""
Repository metrics: the snapshot value type and the aggregator that builds it
from the GitHub API.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from common.logging import LoggingManager
from devinsight.dates import as_naive_utc, hours_between, utcnow
from devinsight.github.models import GitHubPullRequest

logger = LoggingManager.get_logger('app.metrics')

WEEKS_OF_ACTIVITY = 52
DEFAULT_MAX_AGE = timedelta(hours=1)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Latest computed metrics of one repository. Replaced wholesale on every refresh."""
    weekly_commits: Tuple[int, ...] = ()
    open_pull_requests: int = 0
    closed_pull_requests: int = 0
    merged_pull_requests: int = 0
    open_issues: int = 0
    closed_issues: int = 0
    contributors: int = 0
    merge_time: float = 0.0

    def __post_init__(self):
        if any(count < 0 for count in self.weekly_commits):
            raise ValueError("weekly commit counts must be non-negative")
        if self.merge_time < 0:
            raise ValueError("merge time must be non-negative")

    @property
    def total_commits(self) -> int:
        return sum(self.weekly_commits)

    @property
    def current_week_commits(self) -> Optional[int]:
        return self.weekly_commits[-1] if self.weekly_commits else None

    @property
    def previous_week_commits(self) -> Optional[int]:
        return self.weekly_commits[-2] if len(self.weekly_commits) >= 2 else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialised form stored on the repository and mirrored into reports."""
        return {
            "commits": {"total": self.total_commits, "weekly": list(self.weekly_commits)},
            "pullRequests": {
                "open": self.open_pull_requests,
                "closed": self.closed_pull_requests,
                "merged": self.merged_pull_requests,
            },
            "issues": {"open": self.open_issues, "closed": self.closed_issues},
            "contributors": self.contributors,
            "mergeTime": self.merge_time,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MetricsSnapshot":
        if not data:
            return cls()
        commits = data.get("commits") or {}
        pulls = data.get("pullRequests") or {}
        issues = data.get("issues") or {}
        return cls(
            weekly_commits=tuple(int(c) for c in commits.get("weekly") or ()),
            open_pull_requests=int(pulls.get("open", 0)),
            closed_pull_requests=int(pulls.get("closed", 0)),
            merged_pull_requests=int(pulls.get("merged", 0)),
            open_issues=int(issues.get("open", 0)),
            closed_issues=int(issues.get("closed", 0)),
            contributors=int(data.get("contributors", 0)),
            merge_time=float(data.get("mergeTime", 0.0)),
        )


@dataclass(frozen=True)
class RepositoryCounters:
    """GitHub-facing counters shown next to the metrics."""
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0


@dataclass(frozen=True)
class RefreshResult:
    snapshot: MetricsSnapshot
    counters: RepositoryCounters
    fetched_at: datetime
    open_pull_requests: List[GitHubPullRequest] = field(default_factory=list)


def compute_merge_time(pull_requests: Sequence[GitHubPullRequest]) -> float:
    """Mean hours from creation to merge over merged pull requests; 0 when none were merged."""
    durations = [
        max(hours_between(pr.created_at, pr.merged_at), 0.0)
        for pr in pull_requests
        if pr.merged_at is not None
    ]
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


def is_stale(last_fetched: Optional[datetime], now: Optional[datetime] = None,
             max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """True when metrics were never fetched or are older than ``max_age``."""
    if last_fetched is None:
        return True
    now = now or utcnow()
    return as_naive_utc(now) - as_naive_utc(last_fetched) >= max_age


class MetricsAggregator:
    """Fetches the GitHub resources of a repository and computes its metrics snapshot.

    The aggregator always performs a full fetch and never persists anything; any failed
    GitHub call aborts the refresh and propagates to the caller.
    """

    def __init__(self, github_client):
        self.github = github_client

    def refresh(self, repository, token: str, now: Optional[datetime] = None) -> RefreshResult:
        """Builds a fresh snapshot for ``repository`` (anything with ``owner`` and ``name``)."""
        owner, name = repository.owner, repository.name
        full_name = f"{owner}/{name}"
        logger.info(f"Refreshing metrics for {full_name}")

        repo = self.github.get_repo(token, owner, name)
        counters = RepositoryCounters(
            stars=repo.stargazers_count,
            forks=repo.forks_count,
            watchers=repo.watchers_count,
            open_issues=repo.open_issues_count,
        )

        activity = self.github.get_weekly_commit_activity(token, owner, name)
        weekly = tuple(week.total for week in activity[-WEEKS_OF_ACTIVITY:])

        # The "all" listing carries no merge status, so open and closed are fetched separately.
        open_pulls = self.github.get_pull_requests(token, owner, name, state="open")
        closed_pulls = self.github.get_pull_requests(token, owner, name, state="closed")
        merged = [pr for pr in closed_pulls if pr.is_merged]

        open_issues = self.github.get_issues(token, owner, name, state="open")
        closed_issues = self.github.get_issues(token, owner, name, state="closed")

        contributors = self.github.get_contributors(token, owner, name)

        snapshot = MetricsSnapshot(
            weekly_commits=weekly,
            open_pull_requests=len(open_pulls),
            closed_pull_requests=len(closed_pulls) - len(merged),
            merged_pull_requests=len(merged),
            open_issues=len(open_issues),
            closed_issues=len(closed_issues),
            contributors=len(contributors),
            merge_time=compute_merge_time(merged),
        )
        fetched_at = now or utcnow()
        logger.debug(f"Computed snapshot for {full_name}: {snapshot.to_dict()}")
        return RefreshResult(snapshot=snapshot, counters=counters,
                             fetched_at=fetched_at, open_pull_requests=list(open_pulls))
