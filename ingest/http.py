"""
Shared plumbing for the service clients: request dispatch, status-to-error mapping for
foundational calls, and ordered fan-out over sub-resources.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from errors import AuthError, NotFoundError, ServiceError
from storage.retry import perform_request_with_retries

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

DEFAULT_MAX_WORKERS = 8


def is_ok(result: Dict[str, Any]) -> bool:
    status = int(result.get('status') or 0)
    return 200 <= status < 300


def failure_reason(result: Dict[str, Any]) -> str:
    status = int(result.get('status') or 0)
    if status == 0:
        return f"request failed: {result.get('response')}"
    return f"HTTP {status}"


def fan_out(fn: Callable[[T], R], items: Iterable[T], max_workers: int = DEFAULT_MAX_WORKERS) -> List[R]:
    """Apply fn to every item concurrently and return results in item order.

    Each call owns its result until every call has settled; merging happens afterwards in
    submission order, so completion order never leaks into the output.
    """
    items = list(items)
    if not items:
        return []
    if len(items) == 1 or max_workers <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
        return list(executor.map(fn, items))


class ServiceClient:
    """Base for a client of one remote HTTP service."""

    service_label = "Service"

    def __init__(self, base_url: str, headers: Optional[Dict[str, str]] = None, auth: Optional[Tuple[str, str]] = None, timeout: Optional[float] = None, max_workers: int = DEFAULT_MAX_WORKERS):
        self.base_url = base_url.rstrip('/')
        self.headers = headers or {}
        self.auth = auth
        self.timeout = timeout
        self.max_workers = max_workers

    def _request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None, json_body: Any = None) -> Dict[str, Any]:
        logger.debug("%s %s %s", method, url, params or '')
        return perform_request_with_retries(method, url, headers=self.headers, params=params, json_body=json_body, auth=self.auth, timeout=self.timeout)

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request('GET', url, params=params)

    def _post(self, url: str, json_body: Any, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request('POST', url, params=params, json_body=json_body)

    def _raise_for_foundational(self, result: Dict[str, Any], not_found_message: str, auth_message: Optional[str] = None):
        """Map a failed enumeration call onto the error taxonomy."""
        status = int(result.get('status') or 0)
        if 200 <= status < 300:
            return
        if status in (401, 403):
            raise AuthError(auth_message or f"{self.service_label}: Invalid token")
        if status == 404:
            raise NotFoundError(not_found_message)
        if status == 0:
            raise ServiceError(f"{self.service_label}: connection failed ({result.get('response')})", status=0)
        raise ServiceError(f"{self.service_label} API error: {status}", status=status)

    def _fan_out(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        return fan_out(fn, items, self.max_workers)


def merge_branches(branches: Iterable[Tuple[List[Any], List[Any]]]) -> Tuple[List[Any], List[Any]]:
    """Concatenate settled (records, skipped) branches in order, dropping repeated record ids.

    The first occurrence of an id wins; ids only need to be unique within one service.
    """
    seen = set()
    records: List[Any] = []
    skipped: List[Any] = []
    for branch_records, branch_skipped in branches:
        skipped.extend(branch_skipped)
        for record in branch_records:
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)
    return records, skipped
