"""
Unified data models for normalized commits and work items.
Every native API payload is mapped into one of these shapes before results are merged.
"""

import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

_FRACTION_RE = re.compile(r"(\.\d+)(?=[+-]\d\d:\d\d$|$)")


class SourceService(Enum):
    """Service a commit record originated from."""

    GITHUB = "github"
    DEVOPS = "devops"

    @property
    def label(self) -> str:
        return "GitHub" if self is SourceService.GITHUB else "DevOps"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp from either service into an aware datetime.

    Raises ValueError for text that is not a timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp {value!r}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # fromisoformat wants exactly 6 fractional digits before 3.11; DevOps sends 1 to 7
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[1:7].ljust(6, '0'), text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def has_timestamp(value: Any) -> bool:
    """True when value parses with parse_timestamp."""
    try:
        parse_timestamp(value)
    except ValueError:
        return False
    return True


class CommitRecord:
    """
    Service-agnostic commit. `source` tags which service the record came from; `id` is only
    unique within that service.
    """

    def __init__(self, id: str, message: str, author_date: datetime, source: SourceService, url: str, full_message: str = '', author_name: str = '', author_email: str = '', project: Optional[str] = None, repo: Optional[str] = None):
        self.id = id
        self.message = message  # first line only
        self.full_message = full_message or message
        self.author_date = author_date
        self.author_name = author_name
        self.author_email = author_email
        self.source = source
        self.url = url
        self.project = project  # DevOps project
        self.repo = repo  # repository name (GitHub full_name or DevOps repo)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'message': self.message,
            'full_message': self.full_message,
            'author_date': self.author_date.isoformat(),
            'author_name': self.author_name,
            'author_email': self.author_email,
            'source': self.source.value,
            'url': self.url,
            'project': self.project,
            'repo': self.repo,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommitRecord':
        return cls(
            id=data['id'],
            message=data.get('message', ''),
            full_message=data.get('full_message', ''),
            author_date=parse_timestamp(data['author_date']),
            author_name=data.get('author_name', ''),
            author_email=data.get('author_email', ''),
            source=SourceService(data['source']),
            url=data.get('url', ''),
            project=data.get('project'),
            repo=data.get('repo'),
        )

    def __eq__(self, other):
        if not isinstance(other, CommitRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash((self.source, self.id))

    def __repr__(self):
        return f"CommitRecord({self.source.value}:{self.id[:10]} {self.author_date.isoformat()} {self.message!r})"


class WorkItemRecord:
    """
    Work item assigned to the current user. Ids share one namespace across the whole
    organization, so `id` alone identifies an item.
    """

    def __init__(self, id: int, title: str, state: str, type: str, project: str, url: str):
        self.id = id
        self.title = title
        self.state = state
        self.type = type  # Task/Bug/User Story/...
        self.project = project
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'title': self.title, 'state': self.state, 'type': self.type, 'project': self.project, 'url': self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkItemRecord':
        return cls(
            id=int(data['id']),
            title=data.get('title', ''),
            state=data.get('state', ''),
            type=data.get('type', ''),
            project=data.get('project', ''),
            url=data.get('url', ''),
        )

    def __eq__(self, other):
        if not isinstance(other, WorkItemRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"WorkItemRecord({self.id} [{self.state}] {self.title!r})"


class SkippedResource:
    """A leaf call (one repository, project or detail batch) whose contribution was dropped."""

    def __init__(self, service: SourceService, kind: str, name: str, reason: str):
        self.service = service
        self.kind = kind  # repository/project/batch
        self.name = name
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {'service': self.service.value, 'kind': self.kind, 'name': self.name, 'reason': self.reason}

    def __repr__(self):
        return f"SkippedResource({self.service.value} {self.kind} {self.name!r}: {self.reason})"


class FetchResult:
    """Records returned by a fetcher plus the leaf calls it had to skip."""

    def __init__(self, records: Optional[List[Any]] = None, skipped: Optional[List[SkippedResource]] = None):
        self.records = records or []
        self.skipped = skipped or []

    @property
    def degraded(self) -> bool:
        return bool(self.skipped)


class DateWindow:
    """
    One calendar day: start is local midnight, end is start plus one calendar day.
    """

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end

    @classmethod
    def for_day(cls, day: date) -> 'DateWindow':
        start = datetime(day.year, day.month, day.day)
        end = start + timedelta(days=1)
        # naive datetimes resolve in the local zone; each bound gets its own offset across DST changes
        return cls(start.astimezone(), end.astimezone())

    @staticmethod
    def _iso(value: datetime) -> str:
        return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')

    @property
    def since(self) -> str:
        return self._iso(self.start)

    @property
    def until(self) -> str:
        return self._iso(self.end)

    def __repr__(self):
        return f"DateWindow({self.since} .. {self.until})"


__all__ = ["SourceService", "parse_timestamp", "has_timestamp", "CommitRecord", "WorkItemRecord", "SkippedResource", "FetchResult", "DateWindow"]
