#!/usr/bin/env python3
"""
bookmerge - find and merge duplicate bookmarks.

Scans the bookmark database for exact, normalized-URL and similar-title
duplicates, previews how each group would collapse, and applies merges or
deletes on request.
"""
import os
import sys
import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from bookmerge.applier import MergeSession, plan_delete, plan_merge
from bookmerge.classifier import check_for_duplicate, check_url
from bookmerge.config import init_config, get_config
from bookmerge.constants import DEFAULT_TITLE_DISPLAY_WIDTH, DEFAULT_URL_DISPLAY_WIDTH
from bookmerge.db import get_db
from bookmerge.detector import detect_all_duplicates
from bookmerge.errors import GroupNotFoundError
from bookmerge.records import (
    BookmarkRecord,
    CategoryPolicy,
    DatesPolicy,
    DescriptionPolicy,
    DetectionOptions,
    DuplicateDetectionResult,
    DuplicateGroup,
    FaviconPolicy,
    FavoritePolicy,
    MergeOptions,
    TitlePolicy,
    VisitsPolicy,
)
from bookmerge.resolver import resolve_merge

logger = logging.getLogger(__name__)


console = Console()


def _choices(enum_cls) -> List[str]:
    return [m.value for m in enum_cls]


def build_detection_options(args) -> DetectionOptions:
    """Detection options from config, overridden by command-line flags."""
    config = get_config()
    options = config.detection_options()

    return DetectionOptions(
        exact_url_matching=options.exact_url_matching and not getattr(args, 'no_exact', False),
        normalized_url_matching=options.normalized_url_matching and not getattr(args, 'no_normalized', False),
        title_similarity_matching=options.title_similarity_matching and not getattr(args, 'no_title', False),
        title_similarity_threshold=(
            args.threshold if getattr(args, 'threshold', None) is not None
            else options.title_similarity_threshold
        ),
    )


def build_merge_options(args) -> MergeOptions:
    """Merge options from config, overridden by command-line flags."""
    defaults = get_config().merge_options().to_dict()

    overrides = {
        'keep_title': getattr(args, 'keep_title', None),
        'keep_description': getattr(args, 'keep_description', None),
        'keep_category': getattr(args, 'keep_category', None),
        'keep_favicon': getattr(args, 'keep_favicon', None),
        'keep_favorite_status': getattr(args, 'keep_favorite', None),
        'keep_visits': getattr(args, 'keep_visits', None),
        'keep_dates': getattr(args, 'keep_dates', None),
        'combine_tags': getattr(args, 'combine_tags', None),
        'custom_title': getattr(args, 'title', None),
    }
    defaults.update({k: v for k, v in overrides.items() if v is not None})
    return MergeOptions.from_dict(defaults)


def select_groups(result: DuplicateDetectionResult, numbers: List[int]) -> List[DuplicateGroup]:
    """
    Pick groups by their 1-based position in a scan.

    Group ids change on every scan, so the command line addresses groups by
    position instead.
    """
    groups = []
    for number in numbers:
        if not 1 <= number <= len(result.duplicate_groups):
            raise GroupNotFoundError(f"#{number} (scan found {len(result.duplicate_groups)} groups)")
        groups.append(result.duplicate_groups[number - 1])
    return groups


def _truncate(text: Optional[str], width: int) -> str:
    text = text or ''
    return text if len(text) <= width else text[:width - 1] + "…"


def output_result(result: DuplicateDetectionResult, format: str = "table"):
    """Output a detection result in the specified format."""
    if format == "json":
        print(json.dumps(result.to_dict(), indent=2))
        return

    if not result.duplicate_groups:
        console.print("[green]No duplicates found[/green]")
    else:
        table = Table(title="Duplicate Groups")
        table.add_column("#", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Similarity", style="yellow")
        table.add_column("ID", style="dim")
        table.add_column("Title", style="green")
        table.add_column("URL", style="blue")

        for number, group in enumerate(result.duplicate_groups, 1):
            for position, bookmark in enumerate(group.bookmarks):
                table.add_row(
                    str(number) if position == 0 else "",
                    group.duplicate_type.value if position == 0 else "",
                    f"{group.similarity:.2f}" if position == 0 else "",
                    bookmark.id,
                    _truncate(bookmark.title, DEFAULT_TITLE_DISPLAY_WIDTH),
                    _truncate(bookmark.url, DEFAULT_URL_DISPLAY_WIDTH),
                )
            table.add_section()

        console.print(table)

    stats = result.stats
    console.print(
        f"\n[bold]{stats.total_groups}[/bold] groups, "
        f"[bold]{stats.total_duplicates}[/bold] duplicate bookmarks "
        f"({stats.percentage_duplicates}% of {stats.scanned_bookmarks}) "
        f"- exact: {stats.exact_matches}, normalized: {stats.normalized_matches}, "
        f"title-similar: {stats.title_similar_matches} "
        f"[dim]({stats.detection_time_ms} ms)[/dim]"
    )


def output_records(records: List[BookmarkRecord], format: str = "table", title: str = "Bookmarks"):
    """Output bookmark records in the specified format."""
    if format == "json":
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("URL", style="blue")
    table.add_column("Category", style="yellow")
    table.add_column("Tags", style="magenta")
    table.add_column("★", style="red")
    table.add_column("Visits")

    for record in records:
        table.add_row(
            record.id,
            _truncate(record.title, DEFAULT_TITLE_DISPLAY_WIDTH),
            _truncate(record.url, DEFAULT_URL_DISPLAY_WIDTH),
            record.category,
            ", ".join(record.tags),
            "★" if record.is_favorite else "",
            str(record.visits),
        )

    console.print(table)


def cmd_import(args):
    """Import bookmarks from a JSON file."""
    db = get_db(args.db)

    path = Path(args.file)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of bookmarks")

    records = [BookmarkRecord.from_dict(item) for item in data]
    count = db.import_records(records)
    if not args.quiet:
        console.print(f"[green]Imported {count} bookmarks from {path}[/green]")


def cmd_scan(args):
    """Scan the database for duplicate groups."""
    db = get_db(args.db)
    result = detect_all_duplicates(db.snapshot(), build_detection_options(args))
    output_result(result, args.output)


def cmd_check(args):
    """Check whether a URL (and optional title) is already bookmarked."""
    db = get_db(args.db)
    existing = db.snapshot()
    options = build_detection_options(args)

    if args.title:
        candidate = BookmarkRecord(id='', title=args.title, url=args.url)
        matches = check_for_duplicate(candidate, existing, options)
    else:
        matches = check_url(args.url, existing, options)

    if args.output == "json":
        print(json.dumps([r.to_dict() for r in matches], indent=2))
    elif matches:
        output_records(matches, args.output, title="Possible duplicates")
    else:
        console.print("[green]No duplicates found[/green]")

    if matches:
        sys.exit(2)


def _print_plan(number: int, group: DuplicateGroup, operations, merged: Optional[BookmarkRecord] = None):
    console.print(f"\n[bold]Group #{number}[/bold] ({group.duplicate_type.value}, {group.size} bookmarks)")
    if merged is not None:
        console.print(f"  title:    {merged.title}")
        console.print(f"  url:      {merged.url}")
        console.print(f"  category: {merged.category}")
        console.print(f"  tags:     {', '.join(merged.tags)}")
        console.print(f"  favorite: {merged.is_favorite}  visits: {merged.visits}")
    for op in operations:
        style = "yellow" if op.kind == "update" else "red"
        console.print(f"  [{style}]{op.kind}[/{style}] {op.bookmark_id}")


def cmd_merge(args):
    """Preview or apply merges of duplicate groups."""
    db = get_db(args.db)
    result = detect_all_duplicates(db.snapshot(), build_detection_options(args))
    options = build_merge_options(args)

    if args.all:
        numbered = list(enumerate(result.duplicate_groups, 1))
    else:
        numbered = list(zip(args.groups, select_groups(result, args.groups)))

    if not numbered:
        console.print("[yellow]Nothing to merge[/yellow]")
        return

    if not args.apply:
        previews = []
        for number, group in numbered:
            plan = plan_merge(group, resolve_merge(group, options))
            previews.append(plan)
            if args.output != "json":
                _print_plan(number, group, plan.operations, plan.merged)

        if args.output == "json":
            print(json.dumps([
                {
                    "kept_id": p.kept_id,
                    "deleted_ids": list(p.deleted_ids),
                    "merged": p.merged.to_dict(),
                    "operations": [op.to_dict() for op in p.operations],
                }
                for p in previews
            ], indent=2))
        else:
            console.print("\n[yellow]Dry run - no changes made[/yellow]")
            console.print("Run with --apply to merge these groups")
        return

    session = MergeSession(result, db)
    if args.all:
        plans = session.merge_all(options)
    else:
        plans = [session.merge_group(group.id, options) for _, group in numbered]

    deleted = sum(len(p.deleted_ids) for p in plans)
    if args.output == "json":
        print(json.dumps({
            "merged_groups": len(plans),
            "kept_ids": [p.kept_id for p in plans],
            "deleted_ids": [i for p in plans for i in p.deleted_ids],
            "remaining_groups": len(session.result.duplicate_groups),
        }, indent=2))
    elif not args.quiet:
        console.print(f"[green]✓ Merged {len(plans)} groups, removed {deleted} bookmarks[/green]")


def cmd_delete(args):
    """Preview or apply deletion of duplicate group members."""
    db = get_db(args.db)
    result = detect_all_duplicates(db.snapshot(), build_detection_options(args))
    keep_first = not args.all_members
    groups = select_groups(result, args.groups)

    if not args.apply:
        for number, group in zip(args.groups, groups):
            _print_plan(number, group, plan_delete(group, keep_first).operations)
        console.print("\n[yellow]Dry run - no changes made[/yellow]")
        console.print("Run with --apply to delete these bookmarks")
        return

    session = MergeSession(result, db)
    deleted = []
    for group in groups:
        deleted.extend(session.delete_group(group.id, keep_first).deleted_ids)

    if args.output == "json":
        print(json.dumps({"deleted_ids": deleted}, indent=2))
    elif not args.quiet:
        console.print(f"[green]✓ Deleted {len(deleted)} bookmarks[/green]")


def cmd_config(args):
    """Show or initialize configuration."""
    config = get_config()

    if args.config_command == "init":
        path = Path(args.path) if args.path else None
        config.save(path)
        console.print(f"[green]Configuration written to {path or '~/.config/bookmerge/config.toml'}[/green]")
        return

    data = asdict(config)
    if args.output == "json":
        print(json.dumps(data, indent=2))
    else:
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for key, value in data.items():
            table.add_row(key, str(value))
        console.print(table)


def _add_detection_args(parser):
    parser.add_argument("--threshold", type=float, help="Title similarity threshold (0-1)")
    parser.add_argument("--no-exact", action="store_true", help="Disable exact URL matching")
    parser.add_argument("--no-normalized", action="store_true", help="Disable normalized URL matching")
    parser.add_argument("--no-title", action="store_true", help="Disable title similarity matching")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmerge",
        description="bookmerge - find and merge duplicate bookmarks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bookmerge import bookmarks.json
  bookmerge scan
  bookmerge scan --threshold 0.9 --output json
  bookmerge check https://example.com/page --title "Example"
  bookmerge merge 1 3 --keep-title longest --keep-visits max
  bookmerge merge --all --apply
  bookmerge delete 2 --apply

Configuration:
  Default database: ./bookmarks.db or from config
  Config file: ~/.config/bookmerge/config.toml
  Environment: BOOKMERGE_DATABASE, BOOKMERGE_TITLE_SIMILARITY_THRESHOLD
        """
    )

    parser.add_argument("--db", help="Database file (default: bookmarks.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-o", "--output", choices=["table", "json"], help="Output format")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine activity")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    import_parser = subparsers.add_parser("import", help="Import bookmarks from a JSON file")
    import_parser.add_argument("file", help="JSON file with a list of bookmarks")
    import_parser.set_defaults(func=cmd_import)

    scan_parser = subparsers.add_parser("scan", help="Find duplicate groups")
    _add_detection_args(scan_parser)
    scan_parser.set_defaults(func=cmd_scan)

    check_parser = subparsers.add_parser("check", help="Check a URL before bookmarking it")
    check_parser.add_argument("url", help="URL to check")
    check_parser.add_argument("--title", help="Title to compare as well")
    _add_detection_args(check_parser)
    check_parser.set_defaults(func=cmd_check)

    merge_parser = subparsers.add_parser("merge", help="Merge duplicate groups")
    merge_parser.add_argument("groups", nargs="*", type=int, help="Group numbers from 'scan'")
    merge_parser.add_argument("--all", action="store_true", help="Merge every group")
    merge_parser.add_argument("--apply", action="store_true", help="Apply changes (default: dry run)")
    merge_parser.add_argument("--keep-title", choices=_choices(TitlePolicy))
    merge_parser.add_argument("--keep-description", choices=_choices(DescriptionPolicy))
    merge_parser.add_argument("--keep-category", choices=_choices(CategoryPolicy))
    merge_parser.add_argument("--keep-favicon", choices=_choices(FaviconPolicy))
    merge_parser.add_argument("--keep-favorite", choices=_choices(FavoritePolicy))
    merge_parser.add_argument("--keep-visits", choices=_choices(VisitsPolicy))
    merge_parser.add_argument("--keep-dates", choices=_choices(DatesPolicy))
    merge_parser.add_argument("--combine-tags", dest="combine_tags", action="store_true", default=None,
                              help="Union all members' tags")
    merge_parser.add_argument("--no-combine-tags", dest="combine_tags", action="store_false",
                              help="Keep the tags of the bookmark whose title survives")
    merge_parser.add_argument("--title", help="Use this title for the merged bookmark")
    _add_detection_args(merge_parser)
    merge_parser.set_defaults(func=cmd_merge)

    delete_parser = subparsers.add_parser("delete", help="Delete duplicates, keeping the first bookmark")
    delete_parser.add_argument("groups", nargs="+", type=int, help="Group numbers from 'scan'")
    delete_parser.add_argument("--all-members", action="store_true",
                               help="Delete every bookmark in the group, including the first")
    delete_parser.add_argument("--apply", action="store_true", help="Apply changes (default: dry run)")
    _add_detection_args(delete_parser)
    delete_parser.set_defaults(func=cmd_delete)

    config_parser = subparsers.add_parser("config", help="Configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)
    config_show = config_subparsers.add_parser("show", help="Show effective configuration")
    config_show.set_defaults(func=cmd_config)
    config_init = config_subparsers.add_parser("init", help="Write configuration to a TOML file")
    config_init.add_argument("path", nargs="?", help="Target file (default: user config)")
    config_init.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "merge" and not args.all and not args.groups:
        parser.error("merge needs group numbers or --all")

    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    config = init_config(
        database=args.db,
        config_file=Path(args.config) if args.config else None,
        **config_args
    )

    if not args.output:
        args.output = config.output_format

    logging.basicConfig(
        level=logging.INFO if args.verbose else getattr(logging, str(config.log_level).upper(), logging.WARNING),
        format='%(levelname)s: %(message)s'
    )
    global console
    console = Console(no_color=not config.color_output)
    if not config.show_progress:
        os.environ.setdefault('BOOKMERGE_NO_PROGRESS', '1')

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
