"""
Azure DevOps client.
Collects commits through a three-level fan-out (projects -> repositories -> commits) and the
work items assigned to the token's identity. Project enumeration is foundational and fails the
whole call; every deeper level only drops its own contribution when it fails.
"""
import logging
from typing import List, Dict, Any, Tuple
from urllib.parse import quote

from errors import ConfigurationError, ServiceError
from ingest.http import ServiceClient, is_ok, failure_reason, merge_branches
from normalize.models import CommitRecord, DateWindow, FetchResult, SkippedResource, SourceService, WorkItemRecord, has_timestamp
from normalize.util import DEVOPS_WEB_URL, normalize_devops_commit, normalize_devops_work_item

logger = logging.getLogger(__name__)

DEVOPS_API_URL = DEVOPS_WEB_URL
API_VERSION = "7.0"
WORK_ITEM_BATCH_SIZE = 200
CLOSED_STATES = ("Closed", "Done", "Removed")
WORK_ITEM_FIELDS = ("System.Id", "System.Title", "System.State", "System.WorkItemType", "System.TeamProject")

ASSIGNED_WORK_ITEMS_WIQL = (
    "SELECT [System.Id], [System.Title], [System.State], [System.WorkItemType], [System.TeamProject] "
    "FROM WorkItems WHERE [System.AssignedTo] = @Me AND "
    + " AND ".join(f"[System.State] <> '{state}'" for state in CLOSED_STATES)
    + " ORDER BY [System.ChangedDate] DESC"
)


def _batches(ids: List[int], size: int = WORK_ITEM_BATCH_SIZE) -> List[List[int]]:
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class DevOpsClient(ServiceClient):
    """Client for the Azure DevOps REST API authenticated with a personal access token."""

    service_label = "DevOps"

    def __init__(self, token: str, org: str, base_url: str = None, **kwargs):
        self.token = token or ''
        self.org = org or ''
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        # PATs go in basic auth with an empty username
        super().__init__(base_url or DEVOPS_API_URL, headers=headers, auth=('', self.token), **kwargs)

    @property
    def _org_url(self) -> str:
        return f"{self.base_url}/{quote(self.org)}"

    def _project_url(self, project: str) -> str:
        return f"{self._org_url}/{quote(project)}"

    def _require_config(self):
        missing = [name for name, value in (('token', self.token), ('organization', self.org)) if not value]
        if missing:
            raise ConfigurationError(f"Please configure DevOps settings (missing: {', '.join(missing)})")

    def _fetch_projects(self) -> List[Dict[str, Any]]:
        """Enumerate the organization's projects. Failure aborts the whole fetch."""
        res = self._get(f"{self._org_url}/_apis/projects", params={"api-version": API_VERSION})
        self._raise_for_foundational(res, "DevOps: Organization not found", auth_message="DevOps: Invalid token or insufficient permissions")
        data = res.get('response')
        if not isinstance(data, dict):
            raise ServiceError("DevOps API error: unexpected project listing", status=res.get('status'))
        projects = [p for p in data.get('value') or [] if isinstance(p, dict) and p.get('name')]
        logger.debug("Found %d DevOps projects in %s", len(projects), self.org)
        return projects

    # --- commits ---

    def _fetch_repo_commits(self, project: str, repo: Dict[str, Any], window: DateWindow) -> Tuple[List[CommitRecord], List[SkippedResource]]:
        repo_name = repo.get('name') or repo.get('id')
        url = f"{self._project_url(project)}/_apis/git/repositories/{repo.get('id')}/commits"
        params = {
            "searchCriteria.fromDate": window.since,
            "searchCriteria.toDate": window.until,
            "api-version": API_VERSION,
        }
        res = self._get(url, params=params)
        data = res.get('response')
        if not is_ok(res) or not isinstance(data, dict):
            reason = failure_reason(res) if not is_ok(res) else "unexpected response body"
            logger.warning("Skipping DevOps repository %s/%s: %s", project, repo_name, reason)
            return [], [SkippedResource(SourceService.DEVOPS, 'repository', f"{project}/{repo_name}", reason)]
        records = [
            normalize_devops_commit(raw, self.org, project, repo_name)
            for raw in data.get('value') or []
            if isinstance(raw, dict) and raw.get('commitId') and has_timestamp((raw.get('author') or {}).get('date'))
        ]
        return records, []

    def _fetch_project_commits(self, project: str, window: DateWindow) -> Tuple[List[CommitRecord], List[SkippedResource]]:
        res = self._get(f"{self._project_url(project)}/_apis/git/repositories", params={"api-version": API_VERSION})
        data = res.get('response')
        if not is_ok(res) or not isinstance(data, dict):
            reason = failure_reason(res) if not is_ok(res) else "unexpected response body"
            logger.warning("Skipping DevOps project %s: %s", project, reason)
            return [], [SkippedResource(SourceService.DEVOPS, 'project', project, reason)]

        repos = [r for r in data.get('value') or [] if isinstance(r, dict) and r.get('id')]
        records: List[CommitRecord] = []
        skipped: List[SkippedResource] = []
        for repo_records, repo_skipped in self._fan_out(lambda r: self._fetch_repo_commits(project, r, window), repos):
            records.extend(repo_records)
            skipped.extend(repo_skipped)
        return records, skipped

    def fetch_commits(self, window: DateWindow) -> FetchResult:
        """Commits in the window across every repository of every project, deduplicated by commitId."""
        self._require_config()
        projects = self._fetch_projects()
        records, skipped = merge_branches(self._fan_out(lambda p: self._fetch_project_commits(p['name'], window), projects))
        logger.info("DevOps: %d commits from %d projects (%d skipped)", len(records), len(projects), len(skipped))
        return FetchResult(records, skipped)

    # --- work items ---

    def _query_assigned_ids(self, project: str) -> Tuple[List[int], List[SkippedResource]]:
        res = self._post(f"{self._project_url(project)}/_apis/wit/wiql", {"query": ASSIGNED_WORK_ITEMS_WIQL}, params={"api-version": API_VERSION})
        data = res.get('response')
        if not is_ok(res) or not isinstance(data, dict):
            reason = failure_reason(res) if not is_ok(res) else "unexpected response body"
            logger.warning("Skipping work item query for DevOps project %s: %s", project, reason)
            return [], [SkippedResource(SourceService.DEVOPS, 'project', project, reason)]
        ids = [wi['id'] for wi in data.get('workItems') or [] if isinstance(wi, dict) and wi.get('id') is not None]
        return ids, []

    def _fetch_work_item_batch(self, project: str, ids: List[int]) -> Tuple[List[WorkItemRecord], List[SkippedResource]]:
        params = {
            "ids": ",".join(str(i) for i in ids),
            "fields": ",".join(WORK_ITEM_FIELDS),
            "api-version": API_VERSION,
        }
        res = self._get(f"{self._org_url}/_apis/wit/workitems", params=params)
        data = res.get('response')
        if not is_ok(res) or not isinstance(data, dict):
            reason = failure_reason(res) if not is_ok(res) else "unexpected response body"
            name = f"{project}:{ids[0]}..{ids[-1]}"
            logger.warning("Skipping DevOps work item batch %s (%d ids): %s", name, len(ids), reason)
            return [], [SkippedResource(SourceService.DEVOPS, 'batch', name, reason)]
        items = [
            normalize_devops_work_item(raw, self.org, project)
            for raw in data.get('value') or []
            if isinstance(raw, dict) and isinstance(raw.get('id'), int)
        ]
        return items, []

    def _fetch_project_work_items(self, project: str) -> Tuple[List[WorkItemRecord], List[SkippedResource]]:
        ids, skipped = self._query_assigned_ids(project)
        if not ids:
            return [], skipped
        items: List[WorkItemRecord] = []
        for batch_items, batch_skipped in self._fan_out(lambda batch: self._fetch_work_item_batch(project, batch), _batches(ids)):
            items.extend(batch_items)
            skipped.extend(batch_skipped)
        return items, skipped

    def fetch_assigned_work_items(self) -> FetchResult:
        """Open work items assigned to the token's identity across all projects, deduplicated by id."""
        self._require_config()
        projects = self._fetch_projects()
        items, skipped = merge_branches(self._fan_out(lambda p: self._fetch_project_work_items(p['name']), projects))
        logger.info("DevOps: %d assigned work items from %d projects (%d skipped)", len(items), len(projects), len(skipped))
        return FetchResult(items, skipped)

    def verify(self) -> str:
        """Check that the token can list projects. Returns a status message."""
        self._require_config()
        res = self._get(f"{self._org_url}/_apis/projects", params={"api-version": API_VERSION})
        self._raise_for_foundational(res, "Organization not found", auth_message="Invalid token or insufficient permissions")
        data = res.get('response') if isinstance(res.get('response'), dict) else {}
        count = data.get('count', len(data.get('value') or []))
        return f"DevOps connection successful! Found {count} projects."
