"""
GitHub client: lists an organization's repositories and collects the configured user's
commits for one day across all of them.
"""
import logging
from typing import List, Dict, Any, Tuple

from errors import ConfigurationError, NotFoundError, ServiceError
from ingest.http import ServiceClient, is_ok, failure_reason, merge_branches
from normalize.models import CommitRecord, DateWindow, FetchResult, SkippedResource, SourceService, has_timestamp
from normalize.util import normalize_github_commit

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
REPOS_PAGE_SIZE = 100
COMMITS_PAGE_SIZE = 100


class GitHubClient(ServiceClient):
    """Client for the GitHub REST API authenticated with a personal access token."""

    service_label = "GitHub"

    def __init__(self, token: str, username: str, org: str, base_url: str = None, **kwargs):
        self.token = token or ''
        self.username = username or ''
        self.org = org or ''
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }
        super().__init__(base_url or GITHUB_API_URL, headers=headers, **kwargs)

    def _require_config(self):
        missing = [name for name, value in (('token', self.token), ('username', self.username), ('organization', self.org)) if not value]
        if missing:
            raise ConfigurationError(f"GitHub settings incomplete, missing: {', '.join(missing)}")

    def _fetch_repos(self, per_page: int = REPOS_PAGE_SIZE) -> List[Dict[str, Any]]:
        """Enumerate every repository of the organization. Any failed page aborts the call."""
        repos_url = f"{self.base_url}/orgs/{self.org}/repos"
        page = 1
        repos: List[Dict[str, Any]] = []
        while True:
            params = {"per_page": per_page, "page": page, "type": "all"}
            res = self._get(repos_url, params=params)
            self._raise_for_foundational(res, "GitHub: Organization not found")
            data = res.get('response')
            if not isinstance(data, list):
                raise ServiceError("GitHub API error: unexpected repository listing", status=res.get('status'))
            repos.extend(data)
            if len(data) < per_page:
                break
            page += 1
        logger.debug("Found %d repositories in %s", len(repos), self.org)
        return repos

    def _fetch_repo_commits(self, repo: Dict[str, Any], window: DateWindow) -> Tuple[List[CommitRecord], List[SkippedResource]]:
        """Commits of one repository in the window; a failure empties this repository only."""
        full_name = repo.get('full_name') or f"{self.org}/{repo.get('name')}"
        url = f"{self.base_url}/repos/{full_name}/commits"
        params = {"author": self.username, "since": window.since, "until": window.until, "per_page": COMMITS_PAGE_SIZE}
        res = self._get(url, params=params)
        data = res.get('response')
        if not is_ok(res) or not isinstance(data, list):
            reason = failure_reason(res) if not is_ok(res) else "unexpected response body"
            # empty repositories answer 409; nothing was lost there
            if res.get('status') != 409:
                logger.warning("Skipping GitHub repository %s: %s", full_name, reason)
            return [], [SkippedResource(SourceService.GITHUB, 'repository', full_name, reason)]
        records = [normalize_github_commit(raw, repo=full_name) for raw in data if _is_well_formed(raw)]
        return records, []

    def fetch_commits(self, window: DateWindow) -> FetchResult:
        """Commits authored by the configured user across all organization repositories.

        Records keep repository order, then API order; a sha seen through several repositories
        (forks, mirrors) is kept once, first occurrence wins.
        """
        self._require_config()
        repos = self._fetch_repos()
        records, skipped = merge_branches(self._fan_out(lambda r: self._fetch_repo_commits(r, window), repos))
        logger.info("GitHub: %d commits from %d repositories (%d skipped)", len(records), len(repos), len(skipped))
        return FetchResult(records, skipped)

    def verify(self) -> str:
        """Check that the token, user and organization are usable. Returns a status message."""
        self._require_config()
        user_res = self._get(f"{self.base_url}/users/{self.username}")
        self._raise_for_foundational(user_res, "User not found", auth_message="Invalid token")

        org_res = self._get(f"{self.base_url}/orgs/{self.org}")
        self._raise_for_foundational(org_res, "Organization not found", auth_message="Invalid token")

        repos_res = self._get(f"{self.base_url}/orgs/{self.org}/repos", params={"per_page": 1})
        if not is_ok(repos_res):
            if repos_res.get('status') == 404:
                raise NotFoundError("Organization not found")
            raise ServiceError("Cannot access organization repositories", status=repos_res.get('status'))
        return "GitHub connection successful!"


def _is_well_formed(raw: Any) -> bool:
    if not isinstance(raw, dict) or not raw.get('sha'):
        return False
    author = (raw.get('commit') or {}).get('author') or {}
    return has_timestamp(author.get('date'))
