"""
Settings loading and source enablement.
Settings come from an optional YAML file, then environment variables, then explicit overrides
(CLI flags), later sources winning. The core only reads them.
"""
import os
import logging
from enum import Enum
from typing import Optional, Dict, Any, List

import yaml

from errors import ConfigurationError
from normalize.models import SourceService

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = os.path.join(os.path.expanduser('~'), '.daily-tracker', 'settings.yaml')

# settings field -> environment variable
ENV_VARS = {
    'token': 'GITHUB_TOKEN',
    'username': 'GITHUB_USERNAME',
    'organization': 'GITHUB_ORG',
    'devops_token': 'DEVOPS_TOKEN',
    'devops_organization': 'DEVOPS_ORG',
    'commits_source': 'COMMITS_SOURCE',
    'github_api_url': 'GITHUB_API_URL',
    'devops_api_url': 'DEVOPS_API_URL',
}

GITHUB_REQUIRED = ('token', 'username', 'organization')
DEVOPS_REQUIRED = ('devops_token', 'devops_organization')


def _text(name: str, value: Any) -> str:
    """Scalar setting value as stripped text; YAML hands numbers and booleans over unquoted."""
    if value is None:
        return ''
    if isinstance(value, (dict, list)):
        raise ConfigurationError(f"Setting '{name}' must be a single value")
    return str(value).strip()


class SourceSelection(Enum):
    """Which services answer a commit query. Work items always come from DevOps."""

    GITHUB = "github"
    DEVOPS = "devops"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'SourceSelection':
        if not value:
            return cls.BOTH
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown commits source '{value}', expected github, devops or both")


class Settings:
    """
    Credentials and endpoint configuration for both services.
    """

    def __init__(self, token: str = '', username: str = '', organization: str = '', devops_token: str = '', devops_organization: str = '', commits_source: SourceSelection = SourceSelection.BOTH, github_api_url: str = '', devops_api_url: str = ''):
        self.token = _text('token', token)
        self.username = _text('username', username)
        self.organization = _text('organization', organization)
        self.devops_token = _text('devops_token', devops_token)
        self.devops_organization = _text('devops_organization', devops_organization)
        self.commits_source = commits_source if isinstance(commits_source, SourceSelection) else SourceSelection.parse(commits_source)
        self.github_api_url = _text('github_api_url', github_api_url)
        self.devops_api_url = _text('devops_api_url', devops_api_url)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> 'Settings':
        known = {k: v for k, v in (data or {}).items() if k in ENV_VARS}
        if 'commits_source' in known:
            known['commits_source'] = SourceSelection.parse(known['commits_source'])
        return cls(**known)

    def _missing(self, required) -> List[str]:
        return [name for name in required if not getattr(self, name)]

    @property
    def github_enabled(self) -> bool:
        return not self._missing(GITHUB_REQUIRED)

    @property
    def devops_enabled(self) -> bool:
        return not self._missing(DEVOPS_REQUIRED)

    def missing_github_fields(self) -> List[str]:
        return self._missing(GITHUB_REQUIRED)

    def missing_devops_fields(self) -> List[str]:
        return self._missing(DEVOPS_REQUIRED)

    def commit_sources(self) -> List[SourceService]:
        """Services that should run for a commit query, in merge order (GitHub first)."""
        wanted = self.commits_source
        sources = []
        if wanted in (SourceSelection.GITHUB, SourceSelection.BOTH) and self.github_enabled:
            sources.append(SourceService.GITHUB)
        if wanted in (SourceSelection.DEVOPS, SourceSelection.BOTH) and self.devops_enabled:
            sources.append(SourceService.DEVOPS)
        return sources

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in ENV_VARS}
        data['commits_source'] = self.commits_source.value
        if redact:
            for secret in ('token', 'devops_token'):
                if data[secret]:
                    data[secret] = '***'
        return data


def _read_settings_file(path: str) -> Dict[str, Any]:
    if not path or not os.path.exists(path):
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as ex:
            raise ConfigurationError(f"Failed to parse settings file {path}: {ex}") from ex
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    logger.debug("Loaded settings from %s", path)
    return data


def load_settings(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None, overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Resolve Settings from file, environment and overrides (highest precedence last)."""
    environ = os.environ if environ is None else environ
    path = path or environ.get('TRACKER_SETTINGS') or DEFAULT_SETTINGS_PATH

    merged: Dict[str, Any] = {}
    merged.update({k: v for k, v in _read_settings_file(path).items() if v not in (None, '')})
    for field, var in ENV_VARS.items():
        if environ.get(var):
            merged[field] = environ[var]
    merged.update({k: v for k, v in (overrides or {}).items() if v not in (None, '')})
    return Settings.from_mapping(merged)


def require_devops(settings: Settings):
    missing = settings.missing_devops_fields()
    if missing:
        raise ConfigurationError(f"Please configure DevOps settings (missing: {', '.join(missing)})")
