"""
Correlate package: match commit messages to tickets through the keyword mapping table.
"""

from .linker import match_tickets, tag_commits
from .mappings import MappingTable

__all__ = ["match_tickets", "tag_commits", "MappingTable"]
