"""
Keyword mapping table: slug -> ordered, duplicate-free list of ticket ids.
Stored as a JSON object so the file stays hand-editable.
"""
import os
import json
import logging
from typing import Dict, List, Optional, Tuple

from correlate.linker import match_tickets
from errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAPPINGS_PATH = os.path.join(os.path.expanduser('~'), '.daily-tracker', 'mappings.json')


def normalize_slug(slug: str) -> str:
    return (slug or '').strip().lower()


class MappingTable:
    """
    Ordered slug -> tickets table. Slug order is insertion order and decides the order of
    matched tickets; the same ticket may sit under several slugs.
    """

    def __init__(self, mappings: Optional[Dict[str, List[str]]] = None):
        self._mappings: Dict[str, List[str]] = {}
        for slug, tickets in (mappings or {}).items():
            for ticket in tickets or []:
                self.add(ticket, slug)

    def add(self, ticket: str, slug: str) -> bool:
        """Add ticket under slug. Returns False when either is blank or the pair already exists."""
        ticket = (ticket or '').strip()
        slug = normalize_slug(slug)
        if not ticket or not slug:
            return False
        tickets = self._mappings.setdefault(slug, [])
        if ticket in tickets:
            return False
        tickets.append(ticket)
        return True

    def remove(self, ticket: str, slug: str) -> bool:
        """Remove one ticket from a slug; a slug left without tickets disappears."""
        slug = normalize_slug(slug)
        tickets = self._mappings.get(slug)
        if not tickets or ticket not in tickets:
            return False
        tickets.remove(ticket)
        if not tickets:
            del self._mappings[slug]
        return True

    def edit(self, old_ticket: str, old_slug: str, new_ticket: str, new_slug: str) -> bool:
        """Replace one (ticket, slug) pair by another."""
        if not (new_ticket or '').strip() or not normalize_slug(new_slug):
            return False
        self.remove(old_ticket, old_slug)
        self.add(new_ticket, new_slug)
        return True

    def entries(self) -> List[Tuple[str, str]]:
        """Flattened (slug, ticket) pairs in table order."""
        return [(slug, ticket) for slug, tickets in self._mappings.items() for ticket in tickets]

    def tickets_for(self, message: str) -> List[str]:
        return match_tickets(message, self._mappings)

    def to_dict(self) -> Dict[str, List[str]]:
        return {slug: list(tickets) for slug, tickets in self._mappings.items()}

    def __len__(self):
        return len(self._mappings)

    def __contains__(self, slug):
        return normalize_slug(slug) in self._mappings

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'MappingTable':
        """Read a table from a JSON file; a missing file is an empty table."""
        path = path or DEFAULT_MAPPINGS_PATH
        if not os.path.exists(path):
            return cls()
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except ValueError as ex:
                raise ConfigurationError(f"Failed to read mappings file {path}: {ex}") from ex
        if not isinstance(data, dict):
            logger.warning("Ignoring mappings file %s: expected a JSON object", path)
            return cls()
        return cls({k: v for k, v in data.items() if isinstance(v, list)})

    def save(self, path: Optional[str] = None) -> str:
        path = path or DEFAULT_MAPPINGS_PATH
        out_dir = os.path.dirname(path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
        return path
