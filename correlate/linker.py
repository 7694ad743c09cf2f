"""
Ticket matching for commit messages.
A user-maintained table maps lowercase keywords (slugs) to ticket identifiers; any slug found
in a commit message tags the commit with that slug's tickets.
"""
from typing import Dict, List, Mapping, Sequence


def match_tickets(message: str, mappings: Mapping[str, Sequence[str]]) -> List[str]:
    """
    Return the tickets of every slug contained in message (case-insensitive substring match).

    Tickets are ordered by the table order of the first slug that contributed them, then by
    their order under that slug; each ticket appears once.
    """
    if not message or not mappings:
        return []
    msg_lower = message.lower()
    tickets: List[str] = []
    seen = set()
    for slug, slug_tickets in mappings.items():
        if not slug or slug.lower() not in msg_lower:
            continue
        for ticket in slug_tickets:
            if ticket not in seen:
                seen.add(ticket)
                tickets.append(ticket)
    return tickets


def tag_commits(commits, mappings: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
    """Map commit id -> matched tickets for every commit with at least one match."""
    tagged: Dict[str, List[str]] = {}
    for commit in commits:
        tickets = match_tickets(commit.message, mappings)
        if tickets:
            tagged[commit.id] = tickets
    return tagged
