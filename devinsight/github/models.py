"""Typed records for the GitHub resources DevInsight reads."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from devinsight.dates import as_naive_utc


def _login(user) -> Optional[str]:
    return getattr(user, "login", None) if user is not None else None


@dataclass(frozen=True)
class GitHubUser:
    id: int
    login: str
    avatar_url: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_github(cls, user) -> "GitHubUser":
        return cls(
            id=user.id,
            login=user.login,
            avatar_url=user.avatar_url,
            email=user.email,
            name=user.name,
        )


@dataclass(frozen=True)
class GitHubRepo:
    id: int
    name: str
    full_name: str
    owner: str
    description: Optional[str]
    html_url: str
    url: str
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    watchers_count: int = 0
    default_branch: str = "main"

    @classmethod
    def from_github(cls, repo) -> "GitHubRepo":
        return cls(
            id=repo.id,
            name=repo.name,
            full_name=repo.full_name,
            owner=_login(repo.owner),
            description=repo.description,
            html_url=repo.html_url,
            url=repo.url,
            stargazers_count=repo.stargazers_count or 0,
            forks_count=repo.forks_count or 0,
            open_issues_count=repo.open_issues_count or 0,
            watchers_count=repo.watchers_count or 0,
            default_branch=repo.default_branch or "main",
        )


@dataclass(frozen=True)
class GitHubCommit:
    sha: str
    message: str
    author_name: Optional[str]
    author_email: Optional[str]
    authored_at: Optional[datetime]
    author_login: Optional[str] = None

    @classmethod
    def from_github(cls, commit) -> "GitHubCommit":
        git_author = commit.commit.author
        return cls(
            sha=commit.sha,
            message=commit.commit.message,
            author_name=getattr(git_author, "name", None),
            author_email=getattr(git_author, "email", None),
            authored_at=as_naive_utc(getattr(git_author, "date", None)),
            author_login=_login(commit.author),
        )


@dataclass(frozen=True)
class GitHubPullRequest:
    id: int
    number: int
    state: str
    title: str
    user_login: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None

    @classmethod
    def from_github(cls, pull) -> "GitHubPullRequest":
        return cls(
            id=pull.id,
            number=pull.number,
            state=pull.state,
            title=pull.title,
            user_login=_login(pull.user),
            created_at=as_naive_utc(pull.created_at),
            updated_at=as_naive_utc(pull.updated_at),
            closed_at=as_naive_utc(pull.closed_at),
            merged_at=as_naive_utc(pull.merged_at),
        )


@dataclass(frozen=True)
class GitHubIssue:
    id: int
    number: int
    state: str
    title: str
    user_login: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_github(cls, issue) -> "GitHubIssue":
        return cls(
            id=issue.id,
            number=issue.number,
            state=issue.state,
            title=issue.title,
            user_login=_login(issue.user),
            created_at=as_naive_utc(issue.created_at),
            updated_at=as_naive_utc(issue.updated_at),
            closed_at=as_naive_utc(issue.closed_at),
        )


@dataclass(frozen=True)
class GitHubContributor:
    id: int
    login: str
    contributions: int
    avatar_url: Optional[str] = None

    @classmethod
    def from_github(cls, contributor) -> "GitHubContributor":
        return cls(
            id=contributor.id,
            login=contributor.login,
            contributions=contributor.contributions or 0,
            avatar_url=contributor.avatar_url,
        )


@dataclass(frozen=True)
class WeeklyCommitActivity:
    week: Optional[datetime]
    total: int
    days: List[int] = field(default_factory=list)

    @classmethod
    def from_github(cls, stats) -> "WeeklyCommitActivity":
        return cls(
            week=as_naive_utc(stats.week),
            total=stats.total or 0,
            days=list(stats.days or []),
        )
