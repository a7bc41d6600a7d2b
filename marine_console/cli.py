"""
Command-line operator console.

Commands:
- list: Render one page of a collection
- watch: Render a collection and re-render on every push notification
- edit: Run an inline edit of one field, with terminal confirmation
- delete: Delete a record, resolving its dependents interactively
- average-heart-count, count-by-health, search-by-name: Marine statistics
- remove-from-chapter: Detach a marine from its chapter

Usage:
    marine-console list units --page 2 --sort name --desc
    marine-console watch chapters
    marine-console edit units 17 health 150
    marine-console delete chapters 3 --yes
    marine-console delete chapters 3 --yes --cascade
    marine-console count-by-health 50
    marine-console remove-from-chapter 17

Invariants:
    - Exit code is 0 on success, 1 on a failed or cancelled operation
    - Configuration comes from CONSOLE_* environment variables, with
      --base-url overriding the backend address
    - --yes never cascades a delete; only --cascade does

How to change safely:
    - Add new commands, don't change existing arguments
    - Keep every command going through the same Console lifecycle
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from pydantic import ValidationError as SettingsError

from .config import Settings
from .entities import get_kind
from .main import Console, setup_logging
from .models import SortDescriptor, SortDirection
from .surface import TerminalSurface
from .view import ReplicatedView, ViewState

logger = logging.getLogger(__name__)


async def _list(console: Console, args: argparse.Namespace) -> int:
    view = console.view(args.kind)
    await _configure(view, args)
    await view.load()
    return 0 if view.state == ViewState.READY else 1


async def _watch(console: Console, args: argparse.Namespace) -> int:
    view = console.view(args.kind)
    await _configure(view, args)
    await view.load()
    print(f"Watching {args.kind}, press Ctrl+C to stop", file=sys.stderr)
    await asyncio.Event().wait()
    return 0


async def _edit(console: Console, args: argparse.Namespace) -> int:
    view = console.view(args.kind)
    view.size = console.settings.reference_page_size
    await view.load()
    if view.find(args.id) is None:
        print(f"{view.kind.title} {args.id} not found", file=sys.stderr)
        return 1

    session = await view.begin_edit(args.id, args.field)
    session.set_value(args.value)
    await session.submit()
    return 0 if session.committed else 1


async def _delete(console: Console, args: argparse.Namespace) -> int:
    view = console.view(args.kind)
    view.size = console.settings.reference_page_size
    await view.load()
    outcome = await view.delete(args.id)
    return 0 if outcome is not None else 1


async def _average(console: Console, args: argparse.Namespace) -> int:
    return 0 if await console.operations.average_heart_count() is not None else 1


async def _count_by_health(console: Console, args: argparse.Namespace) -> int:
    return 0 if await console.operations.count_by_health(args.health) is not None else 1


async def _search(console: Console, args: argparse.Namespace) -> int:
    return 0 if await console.operations.search_by_name(args.name) is not None else 1


async def _remove_from_chapter(console: Console, args: argparse.Namespace) -> int:
    return 0 if await console.operations.remove_from_chapter(args.id) else 1


async def _configure(view: ReplicatedView, args: argparse.Namespace) -> None:
    if args.size:
        view.size = args.size
    view.index = max(args.page - 1, 0)
    if args.sort:
        direction = SortDirection.DESCENDING if args.desc else SortDirection.ASCENDING
        view.sort = SortDescriptor(args.sort, direction)
    if args.filter:
        view.filter_text = args.filter.strip()


COMMANDS = {
    "list": _list,
    "watch": _watch,
    "edit": _edit,
    "delete": _delete,
    "average-heart-count": _average,
    "count-by-health": _count_by_health,
    "search-by-name": _search,
    "remove-from-chapter": _remove_from_chapter,
}


async def run(args: argparse.Namespace, settings: Settings) -> int:
    surface = TerminalSurface(assume_yes=args.yes, cascade=getattr(args, "cascade", False))
    live = args.command == "watch"
    async with Console(settings, surface, live=live) as console:
        return await COMMANDS[args.command](console, args)


def _kind(value: str) -> str:
    try:
        return get_kind(value).name
    except KeyError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Space marine admin console")
    parser.add_argument("--base-url", help="Backend base URL (overrides CONSOLE_BASE_URL)")
    parser.add_argument("--yes", "-y", action="store_true", help="Answer yes to confirmations")

    # Accepted after the command too; SUPPRESS keeps a global --yes intact.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--yes", "-y", action="store_true", default=argparse.SUPPRESS, help="Answer yes to confirmations"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("list", "Show one page of a collection"), ("watch", "Show a collection live")):
        view_parser = subparsers.add_parser(name, help=help_text, parents=[common])
        view_parser.add_argument("kind", type=_kind, help="units, chapters or coordinates")
        view_parser.add_argument("--page", type=int, default=1, help="Page number, starting at 1")
        view_parser.add_argument("--size", type=int, help="Rows per page")
        view_parser.add_argument("--sort", help="Field to sort by")
        view_parser.add_argument("--desc", action="store_true", help="Sort descending")
        view_parser.add_argument("--filter", help="Text filter (units: name contains)")

    edit_parser = subparsers.add_parser("edit", help="Edit one field of a record", parents=[common])
    edit_parser.add_argument("kind", type=_kind)
    edit_parser.add_argument("id", help="Record id")
    edit_parser.add_argument("field", help="Field name, e.g. health or chapterId")
    edit_parser.add_argument("value", help="New value")

    delete_parser = subparsers.add_parser("delete", help="Delete a record", parents=[common])
    delete_parser.add_argument("kind", type=_kind)
    delete_parser.add_argument("id", help="Record id")
    delete_parser.add_argument(
        "--cascade",
        action="store_true",
        help="With --yes, also delete related records instead of keeping them",
    )

    subparsers.add_parser(
        "average-heart-count", help="Average heart count of all marines", parents=[common]
    )
    count_parser = subparsers.add_parser(
        "count-by-health", help="Count marines with health below a value", parents=[common]
    )
    count_parser.add_argument("health", help="Health threshold, greater than 0")
    search_parser = subparsers.add_parser(
        "search-by-name", help="Find marines whose name contains a fragment", parents=[common]
    )
    search_parser.add_argument("name", help="Name fragment")
    remove_parser = subparsers.add_parser(
        "remove-from-chapter", help="Detach a marine from its chapter", parents=[common]
    )
    remove_parser.add_argument("id", help="Space Marine id")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for the marine console."""
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
    except SettingsError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    if args.base_url:
        settings.base_url = args.base_url

    setup_logging(settings)

    try:
        code = asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        code = 0
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
