"""
Normalization helpers.
One pure function per (service, record kind) mapping a native API payload into normalize.models
records. Callers are expected to pass well-formed payloads; nothing here touches the network.
"""
from typing import Dict, Any, Optional
from urllib.parse import quote

from normalize.models import CommitRecord, WorkItemRecord, SourceService, parse_timestamp

DEVOPS_WEB_URL = "https://dev.azure.com"


def first_line(message: str) -> str:
    """Return the subject line of a commit message."""
    if not message:
        return ''
    return message.split('\n', 1)[0].rstrip('\r')


def normalize_github_commit(raw: Dict[str, Any], repo: Optional[str] = None) -> CommitRecord:
    """Create a CommitRecord from a GitHub `/repos/{full_name}/commits` item."""
    commit = raw.get('commit') or {}
    author = commit.get('author') or {}
    message = commit.get('message') or ''
    return CommitRecord(
        id=raw['sha'],
        message=first_line(message),
        full_message=message,
        author_date=parse_timestamp(author['date']),
        author_name=author.get('name') or '',
        author_email=author.get('email') or '',
        source=SourceService.GITHUB,
        url=raw.get('html_url') or '',
        repo=repo,
    )


def devops_commit_url(organization: str, project: str, repo: str, commit_id: str, web_url: str = DEVOPS_WEB_URL) -> str:
    return f"{web_url}/{quote(organization)}/{quote(project)}/_git/{quote(repo)}/commit/{commit_id}"


def normalize_devops_commit(raw: Dict[str, Any], organization: str, project: str, repo: str, web_url: str = DEVOPS_WEB_URL) -> CommitRecord:
    """Create a CommitRecord from an Azure DevOps git commit ref.

    DevOps returns `comment` (possibly truncated) instead of a message and carries no web link,
    so the link is built from organization/project/repository.
    """
    author = raw.get('author') or {}
    message = raw.get('comment') or ''
    commit_id = raw['commitId']
    return CommitRecord(
        id=commit_id,
        message=first_line(message),
        full_message=message,
        author_date=parse_timestamp(author['date']),
        author_name=author.get('name') or '',
        author_email=author.get('email') or '',
        source=SourceService.DEVOPS,
        url=devops_commit_url(organization, project, repo, commit_id, web_url),
        project=project,
        repo=repo,
    )


def devops_work_item_url(organization: str, project: str, item_id: int, web_url: str = DEVOPS_WEB_URL) -> str:
    return f"{web_url}/{quote(organization)}/{quote(project)}/_workitems/edit/{item_id}"


def normalize_devops_work_item(raw: Dict[str, Any], organization: str, project: str, web_url: str = DEVOPS_WEB_URL) -> WorkItemRecord:
    """Create a WorkItemRecord from a `/_apis/wit/workitems` item.

    `project` is the project the item was found through; it is used for the link and as a
    fallback when the payload lacks System.TeamProject.
    """
    fields = raw.get('fields') or {}
    item_id = int(raw['id'])
    return WorkItemRecord(
        id=item_id,
        title=fields.get('System.Title') or '',
        state=fields.get('System.State') or '',
        type=fields.get('System.WorkItemType') or '',
        project=fields.get('System.TeamProject') or project,
        url=devops_work_item_url(organization, project, item_id, web_url),
    )
