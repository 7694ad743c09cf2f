"""
Service clients for GitHub and Azure DevOps.
"""

from .devops import DevOpsClient
from .github import GitHubClient

__all__ = ["GitHubClient", "DevOpsClient"]
