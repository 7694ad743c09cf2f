"""
Aggregator: runs the enabled per-service commit fetchers side by side and merges their output
into one list, newest first.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

from errors import NoSourceConfiguredError, TrackerError
from normalize.models import CommitRecord, DateWindow, FetchResult, SkippedResource, SourceService

logger = logging.getLogger(__name__)

CommitFetcher = Callable[[DateWindow], FetchResult]


def sort_commits(records: List[CommitRecord]) -> List[CommitRecord]:
    """Newest first. sorted() is stable, so same-instant commits keep merge order."""
    return sorted(records, key=lambda r: r.author_date, reverse=True)


def _run(fetcher: CommitFetcher, window: DateWindow) -> Tuple[Optional[FetchResult], Optional[BaseException]]:
    """Run one fetcher and return (result, None) or (None, error); the error is kept for the merge."""
    try:
        return fetcher(window), None
    except Exception as ex:
        return None, ex


def aggregate(fetchers: Sequence[Tuple[SourceService, CommitFetcher]], window: DateWindow) -> FetchResult:
    """Merge commits from every enabled service for one window.

    A service that fails is dropped (and reported in `skipped`) as long as another succeeded.
    When every service fails, the first failure in service order is raised.
    """
    if not fetchers:
        raise NoSourceConfiguredError()

    with ThreadPoolExecutor(max_workers=len(fetchers)) as executor:
        outcomes = list(executor.map(lambda pair: _run(pair[1], window), fetchers))

    records: List[CommitRecord] = []
    skipped: List[SkippedResource] = []
    errors: List[BaseException] = []
    for (service, _), (result, error) in zip(fetchers, outcomes):
        if error is not None:
            if isinstance(error, TrackerError):
                logger.warning("%s commits unavailable: %s", service.label, error)
            else:
                logger.warning("%s commits unavailable", service.label, exc_info=error)
            errors.append(error)
            skipped.append(SkippedResource(service, 'service', service.value, str(error)))
            continue
        records.extend(result.records)
        skipped.extend(result.skipped)

    if len(errors) == len(fetchers):
        raise errors[0]
    return FetchResult(sort_commits(records), skipped)
