"""
Query surface for consumers (CLI, UIs).
A Tracker is the per-process context: resolved settings, the two service clients, the result
cache and the mapping table. Every query goes cache first, then the aggregator.
"""
import logging
from typing import Dict, List, Optional

from aggregator import aggregate
from correlate.mappings import MappingTable
from errors import TrackerError
from ingest.devops import DevOpsClient
from ingest.github import GitHubClient
from normalize.dates import format_date, parse_date
from normalize.models import CommitRecord, DateWindow, SkippedResource, SourceService, WorkItemRecord
from settings import Settings, require_devops
from storage.cache import Cache, ResultCache

logger = logging.getLogger(__name__)


class Tracker:
    def __init__(self, settings: Settings, cache: Optional[ResultCache] = None, mappings: Optional[MappingTable] = None, github: Optional[GitHubClient] = None, devops: Optional[DevOpsClient] = None, timeout: Optional[float] = None):
        self.settings = settings
        self.cache = cache or ResultCache(Cache())
        self.mappings = mappings if mappings is not None else MappingTable()
        self.github = github or GitHubClient(settings.token, settings.username, settings.organization, base_url=settings.github_api_url or None, timeout=timeout)
        self.devops = devops or DevOpsClient(settings.devops_token, settings.devops_organization, base_url=settings.devops_api_url or None, timeout=timeout)
        # leaf calls dropped by the most recent query; empty after a cache hit
        self.last_skipped: List[SkippedResource] = []

    def _commit_fetchers(self):
        clients = {SourceService.GITHUB: self.github, SourceService.DEVOPS: self.devops}
        return [(service, clients[service].fetch_commits) for service in self.settings.commit_sources()]

    def fetch_commits_for_date(self, date_string: str, force_refresh: bool = False) -> List[CommitRecord]:
        """Commits for one "dd.mm.yyyy" day from every enabled source, newest first.

        A cached answer for the same day is returned without any network call unless
        force_refresh is set.
        """
        day = parse_date(date_string)
        key = format_date(day)
        if not force_refresh:
            cached = self.cache.get_commits(key)
            if cached is not None:
                self.last_skipped = []
                return [CommitRecord.from_dict(d) for d in cached]

        fetchers = self._commit_fetchers()
        logger.info("Fetching commits for %s from %s", key, ", ".join(s.value for s, _ in fetchers) or "no source")
        result = aggregate(fetchers, DateWindow.for_day(day))
        self.last_skipped = result.skipped
        self.cache.put_commits(key, [r.to_dict() for r in result.records])
        return result.records

    def fetch_assigned_work_items(self, force_refresh: bool = False) -> List[WorkItemRecord]:
        """Open DevOps work items assigned to the current identity; cached for five minutes."""
        require_devops(self.settings)
        if not force_refresh:
            cached = self.cache.get_work_items()
            if cached is not None:
                self.last_skipped = []
                return [WorkItemRecord.from_dict(d) for d in cached]

        result = self.devops.fetch_assigned_work_items()
        self.last_skipped = result.skipped
        self.cache.put_work_items([r.to_dict() for r in result.records])
        return result.records

    def tickets_for_commit(self, commit: CommitRecord) -> List[str]:
        return self.mappings.tickets_for(commit.message)

    def verify(self) -> Dict[str, str]:
        """Connection check for every configured service: service name -> status message."""
        statuses: Dict[str, str] = {}
        checks = [
            (SourceService.GITHUB, self.settings.github_enabled, self.github.verify),
            (SourceService.DEVOPS, self.settings.devops_enabled, self.devops.verify),
        ]
        for service, enabled, check in checks:
            if not enabled:
                statuses[service.value] = "not configured"
                continue
            try:
                statuses[service.value] = check()
            except TrackerError as ex:
                statuses[service.value] = f"Connection failed: {ex}"
        return statuses
