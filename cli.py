"""
CLI entry point for the daily tracker. Wires settings -> tracker -> query and prints the result.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from correlate.mappings import MappingTable
from errors import TrackerError, describe_error
from normalize.dates import parse_date_from_text, today_string
from settings import load_settings
from storage.cache import Cache, ResultCache
from storage.retry import configure_retry
from tracker import Tracker

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = "tracker_cache.db"


def _print_json(obj):
    print(json.dumps(obj, indent=2, default=str))


def _print_skipped(skipped):
    for s in skipped:
        print(f"warning: skipped {s.service.label} {s.kind} {s.name} ({s.reason})", file=sys.stderr)


def _print_commits(tracker: Tracker, commits, as_json: bool):
    if as_json:
        _print_json([dict(c.to_dict(), tickets=tracker.tickets_for_commit(c)) for c in commits])
        return
    if not commits:
        print("No commits for this date")
        return
    for c in commits:
        tickets = tracker.tickets_for_commit(c)
        suffix = f"  [{', '.join(tickets)}]" if tickets else ''
        print(f"{c.author_date.astimezone().strftime('%H:%M')}  {c.source.label:<6}  {c.message}{suffix}")


def _print_work_items(items, as_json: bool):
    if as_json:
        _print_json([i.to_dict() for i in items])
        return
    if not items:
        print("No active work items")
        return
    for i in items:
        print(f"{i.id:>7}  {i.type:<12}  {i.state:<12}  {i.project}: {i.title}")


def _resolve_date(raw: Optional[str]) -> str:
    """Accept dd.mm.yyyy, dd.mm.yy or any text containing one; default to today."""
    if not raw:
        return today_string()
    return parse_date_from_text(raw) or raw


def _cmd_commits(args, tracker: Tracker) -> int:
    commits = tracker.fetch_commits_for_date(_resolve_date(args.date), force_refresh=args.refresh)
    _print_commits(tracker, commits, args.json)
    if args.show_skipped:
        _print_skipped(tracker.last_skipped)
    return 0


def _cmd_tasks(args, tracker: Tracker) -> int:
    items = tracker.fetch_assigned_work_items(force_refresh=args.refresh)
    _print_work_items(items, args.json)
    if args.show_skipped:
        _print_skipped(tracker.last_skipped)
    return 0


def _cmd_settings(args, tracker: Tracker) -> int:
    settings = tracker.settings
    data = settings.to_dict(redact=not args.show_secrets)
    data['github_missing'] = settings.missing_github_fields()
    data['devops_missing'] = settings.missing_devops_fields()
    _print_json(data)
    return 0


def _cmd_verify(args, tracker: Tracker) -> int:
    statuses = tracker.verify()
    for service, message in statuses.items():
        print(f"{service}: {message}")
    return 1 if any(m.startswith("Connection failed") for m in statuses.values()) else 0


def _cmd_map(args, tracker: Tracker) -> int:
    table = tracker.mappings
    if args.map_action == 'list':
        entries = table.entries()
        if not entries:
            print("No mappings yet")
        for slug, ticket in entries:
            print(f"{ticket} -> {slug}")
        return 0
    if args.map_action == 'add':
        changed = table.add(args.ticket, args.slug)
    else:
        changed = table.remove(args.ticket, args.slug)
    if changed:
        path = table.save(args.mappings)
        print(f"Saved mappings to {path}")
    else:
        print("Mappings unchanged")
    return 0


def _cmd_cache(args, tracker: Tracker) -> int:
    cache = tracker.cache.cache
    if args.cache_action == 'info':
        _print_json(cache.stats())
    elif args.cache_action == 'list':
        _print_json(cache.list_keys())
    elif args.cache_action == 'clear':
        if not args.force:
            confirm = input(f"Are you sure you want to clear the cache at {cache.path}? [y/N]: ")
            if confirm.strip().lower() not in ("y", "yes"):
                print("Aborted cache clear.")
                return 0
        cache.clear()
        print(f"Cleared cache at {cache.path}")
    return 0


COMMANDS = {
    'commits': _cmd_commits,
    'tasks': _cmd_tasks,
    'verify': _cmd_verify,
    'settings': _cmd_settings,
    'map': _cmd_map,
    'cache': _cmd_cache,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="daily-tracker", description="Daily commits and work items from GitHub and Azure DevOps")
    parser.add_argument("--settings", type=str, default=None, help="Path to YAML settings file (or set TRACKER_SETTINGS)")
    parser.add_argument("--cache", type=str, default=DEFAULT_CACHE_PATH, help="Path to SQLite cache file; ':memory:' disables persistence")
    parser.add_argument("--mappings", type=str, default=None, help="Path to JSON keyword mapping file")
    parser.add_argument("--github-token", type=str, default=None)
    parser.add_argument("--github-user", type=str, default=None)
    parser.add_argument("--github-org", type=str, default=None)
    parser.add_argument("--devops-token", type=str, default=None)
    parser.add_argument("--devops-org", type=str, default=None)
    parser.add_argument("--source", choices=("github", "devops", "both"), default=None, help="Which services answer commit queries")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    # retry/backoff knobs: TRACKER_MAX_RETRIES, TRACKER_BACKOFF_BASE, TRACKER_BACKOFF_JITTER, TRACKER_MAX_BACKOFF set the defaults
    parser.add_argument("--max-retries", type=int, default=None, help="Maximum attempts per HTTP request")
    parser.add_argument("--backoff-base", type=float, default=None, help="Base backoff seconds")
    parser.add_argument("--backoff-jitter", type=float, default=None, help="Jitter seconds added to backoff")
    parser.add_argument("--max-backoff", type=float, default=None, help="Maximum backoff cap in seconds")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for progress, -vv for every request")

    sub = parser.add_subparsers(dest="command", required=True)

    commits = sub.add_parser("commits", help="Commits for one day, newest first")
    commits.add_argument("--date", type=str, default="", help="dd.mm.yyyy (default: today)")
    commits.add_argument("--refresh", action="store_true", help="Bypass the cache")
    commits.add_argument("--json", action="store_true")
    commits.add_argument("--show-skipped", action="store_true", help="Warn about repositories/projects that could not be read")

    tasks = sub.add_parser("tasks", help="Open work items assigned to you")
    tasks.add_argument("--refresh", action="store_true", help="Bypass the cache")
    tasks.add_argument("--json", action="store_true")
    tasks.add_argument("--show-skipped", action="store_true")

    sub.add_parser("verify", help="Test the configured connections")

    show = sub.add_parser("settings", help="Print the resolved settings, tokens redacted")
    show.add_argument("--show-secrets", action="store_true", help="Print tokens in clear text")

    mapping = sub.add_parser("map", help="Edit the keyword -> ticket mappings")
    map_sub = mapping.add_subparsers(dest="map_action", required=True)
    for action in ("add", "remove"):
        p = map_sub.add_parser(action)
        p.add_argument("ticket")
        p.add_argument("slug")
    map_sub.add_parser("list")

    cache = sub.add_parser("cache", help="Inspect or clear the result cache")
    cache.add_argument("cache_action", choices=("info", "list", "clear"))
    cache.add_argument("--force", action="store_true", help="Clear without confirmation")
    return parser


def _configure_logging(verbosity: int):
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    # CLI flags take precedence over environment variables
    configure_retry(max_retries=args.max_retries, backoff_base=args.backoff_base, backoff_jitter=args.backoff_jitter, max_backoff=args.max_backoff)

    cache = None
    try:
        settings = load_settings(args.settings, overrides={
            'token': args.github_token,
            'username': args.github_user,
            'organization': args.github_org,
            'devops_token': args.devops_token,
            'devops_organization': args.devops_org,
            'commits_source': args.source,
        })
        cache = Cache(args.cache)
        tracker = Tracker(settings, cache=ResultCache(cache), mappings=MappingTable.load(args.mappings), timeout=args.timeout)
        return COMMANDS[args.command](args, tracker)
    except TrackerError as ex:
        print(describe_error(ex), file=sys.stderr)
        return 1
    finally:
        if cache:
            cache.close()


if __name__ == "__main__":
    sys.exit(main())
