"""Shared fixtures: an in-memory store and a fake GitHub data client."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from devinsight.github.models import (
    GitHubContributor,
    GitHubIssue,
    GitHubPullRequest,
    GitHubRepo,
    GitHubUser,
    WeeklyCommitActivity,
)
from devinsight.store import Store


def _repo(full_name="octo/widgets", **overrides):
    owner, name = full_name.split("/")
    values = dict(
        id=sum(map(ord, full_name)),
        name=name,
        full_name=full_name,
        owner=owner,
        description="Widgets for octopuses",
        html_url=f"https://github.com/{full_name}",
        url=f"https://api.github.com/repos/{full_name}",
        stargazers_count=42,
        forks_count=7,
        open_issues_count=3,
        watchers_count=42,
        default_branch="main",
    )
    values.update(overrides)
    return GitHubRepo(**values)


def _pull(number, created_at, merged_at=None, state="closed"):
    return GitHubPullRequest(
        id=1000 + number,
        number=number,
        state=state,
        title=f"PR {number}",
        user_login="octocat",
        created_at=created_at,
        closed_at=merged_at,
        merged_at=merged_at,
    )


def _issue(number, state):
    return GitHubIssue(id=2000 + number, number=number, state=state, title=f"Issue {number}",
                       user_login="octocat", created_at=datetime(2026, 1, 1))


@pytest.fixture
def store():
    return Store("sqlite:///:memory:")


@pytest.fixture
def make_repo():
    return _repo


@pytest.fixture
def make_pull():
    return _pull


@pytest.fixture
def fake_github():
    """Factory for a GitHub data client double serving fixed data for every repository."""

    def build(weekly=(5, 5, 5, 5, 5, 0), open_pulls=(), closed_pulls=(), open_issues=2, closed_issues=3,
              contributors=4, repos=None, user=None):
        repos = list(repos or [_repo()])
        by_name = {repo.full_name: repo for repo in repos}
        client = MagicMock()
        client.get_user.return_value = user or GitHubUser(id=501, login="octocat",
                                                          avatar_url="https://avatars/octocat",
                                                          email="octocat@example.com", name="Octo Cat")
        client.get_user_repos.return_value = repos
        client.get_repo.side_effect = lambda token, owner, name: by_name.get(f"{owner}/{name}") or _repo(f"{owner}/{name}")
        client.get_weekly_commit_activity.return_value = [
            WeeklyCommitActivity(week=datetime(2026, 1, 4) + timedelta(weeks=i), total=total)
            for i, total in enumerate(weekly)
        ]
        client.get_pull_requests.side_effect = (
            lambda token, owner, name, state="all": list(open_pulls if state == "open" else closed_pulls)
        )
        client.get_issues.side_effect = lambda token, owner, name, state="all": [
            _issue(i, state) for i in range(open_issues if state == "open" else closed_issues)
        ]
        client.get_contributors.return_value = [
            GitHubContributor(id=i, login=f"dev{i}", contributions=10 - i) for i in range(contributors)
        ]
        return client

    return build
