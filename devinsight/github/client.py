"""GitHub API client implementation."""
from datetime import datetime
from functools import wraps
from typing import Any, Callable, List, Optional

import requests
from github import Auth, Github, GithubException

from common.logging import LoggingManager
from devinsight.errors import TransportError, UpstreamError, ValidationError
from .models import (
    GitHubCommit,
    GitHubContributor,
    GitHubIssue,
    GitHubPullRequest,
    GitHubRepo,
    GitHubUser,
    WeeklyCommitActivity,
)

logger = LoggingManager.get_logger('app.github_client')

PAGE_SIZE = 100
VALID_STATES = ("open", "closed", "all")


def _error_message(exc: GithubException) -> str:
    data = exc.data
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(data) if data else str(exc)


def translate_github_errors(func: Callable) -> Callable:
    """Decorator mapping PyGithub and requests failures onto the DevInsight error taxonomy.

    No retries happen here; callers decide what to do with a failed call.
    """

    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except GithubException as e:
            message = _error_message(e)
            logger.warning(f"{func.__name__} failed with GitHub status {e.status}: {message}")
            raise UpstreamError(e.status, message) from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"{func.__name__} failed to reach GitHub: {e}")
            raise TransportError(f"GitHub API unreachable: {e}") from e

    return wrapper


def _check_state(state: str) -> str:
    if state not in VALID_STATES:
        raise ValidationError(f"Unsupported state '{state}', expected one of {', '.join(VALID_STATES)}")
    return state


class GitHubDataClient:
    """Typed, read-only access to the GitHub REST resources DevInsight needs.

    Every call takes the caller's access token, so one client instance serves all users.
    """

    def __init__(self,
                 base_url: str = "https://api.github.com",
                 timeout: int = 15,
                 per_page: int = PAGE_SIZE,
                 github_factory: Optional[Callable[[str], Github]] = None):
        """Initialize the client.

        Args:
            base_url: GitHub API root.
            timeout: Seconds before an outbound request is abandoned.
            per_page: Page size for list endpoints, capped at 100.
            github_factory: Builds a PyGithub client for a token; tests pass fakes here.
        """
        self.base_url = base_url
        self.timeout = timeout
        self.per_page = min(per_page, PAGE_SIZE)
        self._github_factory = github_factory or self._build_github

    @classmethod
    def from_config(cls, config) -> "GitHubDataClient":
        return cls(base_url=config.github_api_url, timeout=config.github_timeout)

    def _build_github(self, token: str) -> Github:
        # PyGithub retries on its own by default; retry policy belongs to our callers.
        return Github(auth=Auth.Token(token), base_url=self.base_url,
                      timeout=self.timeout, per_page=self.per_page, retry=None)

    def _repo(self, token: str, owner: str, name: str):
        return self._github_factory(token).get_repo(f"{owner}/{name}")

    @translate_github_errors
    def get_user(self, token: str) -> GitHubUser:
        logger.debug("Fetching authenticated GitHub user")
        return GitHubUser.from_github(self._github_factory(token).get_user())

    @translate_github_errors
    def get_user_repos(self, token: str) -> List[GitHubRepo]:
        """First page of the authenticated user's repositories, most recently updated first."""
        logger.debug("Fetching repositories of the authenticated user")
        repos = self._github_factory(token).get_user().get_repos(sort="updated")
        return [GitHubRepo.from_github(repo) for repo in repos.get_page(0)]

    @translate_github_errors
    def get_repo(self, token: str, owner: str, name: str) -> GitHubRepo:
        logger.debug(f"Fetching repository {owner}/{name}")
        return GitHubRepo.from_github(self._repo(token, owner, name))

    @translate_github_errors
    def get_commits(self, token: str, owner: str, name: str,
                    since: Optional[datetime] = None) -> List[GitHubCommit]:
        logger.debug(f"Fetching commits for {owner}/{name} (since={since})")
        filters = {}
        if since is not None:
            filters["since"] = since
        commits = self._repo(token, owner, name).get_commits(**filters)
        return [GitHubCommit.from_github(commit) for commit in commits.get_page(0)]

    @translate_github_errors
    def get_pull_requests(self, token: str, owner: str, name: str,
                          state: str = "all") -> List[GitHubPullRequest]:
        _check_state(state)
        logger.debug(f"Fetching {state} pull requests for {owner}/{name}")
        pulls = self._repo(token, owner, name).get_pulls(state=state)
        return [GitHubPullRequest.from_github(pull) for pull in pulls.get_page(0)]

    @translate_github_errors
    def get_issues(self, token: str, owner: str, name: str,
                   state: str = "all") -> List[GitHubIssue]:
        _check_state(state)
        logger.debug(f"Fetching {state} issues for {owner}/{name}")
        issues = self._repo(token, owner, name).get_issues(state=state)
        return [GitHubIssue.from_github(issue) for issue in issues.get_page(0)]

    @translate_github_errors
    def get_contributors(self, token: str, owner: str, name: str) -> List[GitHubContributor]:
        logger.debug(f"Fetching contributors for {owner}/{name}")
        contributors = self._repo(token, owner, name).get_contributors()
        return [GitHubContributor.from_github(c) for c in contributors.get_page(0)]

    @translate_github_errors
    def get_weekly_commit_activity(self, token: str, owner: str, name: str) -> List[WeeklyCommitActivity]:
        """Last 52 weeks of commit counts, oldest first.

        GitHub answers 202 while it computes the statistics; that surfaces as an empty list.
        """
        logger.debug(f"Fetching weekly commit activity for {owner}/{name}")
        stats = self._repo(token, owner, name).get_stats_commit_activity()
        if stats is None:
            logger.info(f"Commit activity for {owner}/{name} is still being computed by GitHub")
            return []
        return [WeeklyCommitActivity.from_github(week) for week in stats]
