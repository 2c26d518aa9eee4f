"""
Command line interface for the repository catalog.

Usage:
    repo-catalog import https://github.com/psf/requests pallets/flask
    repo-catalog import --file urls.txt
    repo-catalog list --search http --language Python --sort name-asc
    repo-catalog export --output backup.json
    repo-catalog restore backup.json --push
    repo-catalog sync
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from catalog.config import config
from catalog.exceptions import CatalogError, ValidationError
from catalog.github import GitHubClient, format_stars
from catalog.importer import BulkImporter, ImportItem
from catalog.local_store import DuckDBBackend, LocalCacheStore, load_default_data
from catalog.observability import get_logger, setup_logging
from catalog.query import ALL, DEFAULT_SORT, QueryFilters, catalog_stats
from catalog.remote import HttpRemoteStore
from catalog.session import SessionContext
from catalog.sync import SyncCoordinator
from catalog.validators import validate_sort

logger = get_logger(__name__)


def _sort_arg(value: str) -> str:
    try:
        validate_sort(value)
    except ValidationError as e:
        raise argparse.ArgumentTypeError(str(e))
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-catalog",
        description="Local-first catalog of GitHub repositories",
    )
    parser.add_argument(
        "--db",
        default=None,
        help=f"DuckDB cache file (default: {config.storage.db_path})"
    )
    parser.add_argument(
        "--log-level",
        default=config.logging.level,
        help="Log level (default: %(default)s)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import repositories from GitHub URLs")
    import_parser.add_argument("urls", nargs="*", help="Repository URLs or owner/repo")
    import_parser.add_argument("--file", type=Path, help="Read URLs from a file, one per line")
    import_parser.add_argument(
        "--delay",
        type=float,
        default=config.importer.delay_seconds,
        help="Seconds between GitHub requests (default: %(default)s)"
    )

    export_parser = subparsers.add_parser("export", help="Write a JSON backup")
    export_parser.add_argument("--output", type=Path, help="Backup file (default: stdout)")

    restore_parser = subparsers.add_parser("restore", help="Restore a JSON backup")
    restore_parser.add_argument("file", type=Path, help="Backup file")
    restore_parser.add_argument("--push", action="store_true", help="Push restored data to the remote store")

    subparsers.add_parser("sync", help="Push the local mirror to the remote store")

    list_parser = subparsers.add_parser("list", help="Search and list cataloged projects")
    list_parser.add_argument("--search", default="", help="Text to search for")
    list_parser.add_argument("--language", default=ALL)
    list_parser.add_argument("--category", default=ALL)
    list_parser.add_argument("--sort", type=_sort_arg, default=DEFAULT_SORT, help="e.g. stars-desc, name-asc")
    list_parser.add_argument("--favorites", action="store_true", help="Only favorite projects")
    list_parser.add_argument("--refresh", action="store_true", help="Refresh from the remote store first")

    return parser


def _read_urls(args: argparse.Namespace) -> List[str]:
    urls = list(args.urls)
    if args.file:
        urls.extend(args.file.read_text(encoding="utf-8").splitlines())
    return urls


def _print_progress(completed: int, total: int, item: ImportItem) -> None:
    status = "ok" if item.success else f"failed: {item.error}"
    print(f"[{completed}/{total}] {item.url} {status}", file=sys.stderr)


async def _cmd_import(args: argparse.Namespace, coordinator: SyncCoordinator) -> int:
    urls = _read_urls(args)
    if not urls:
        logger.error("No URLs given")
        return 2

    async with GitHubClient() as github:
        importer = BulkImporter(coordinator, github.get_repo_info_from_url, delay=args.delay)
        report = await importer.run(urls, on_progress=_print_progress)

    print(f"Import finished: {report.summary()}")
    return 0 if report.failed_count == 0 else 1


async def _cmd_export(args: argparse.Namespace, coordinator: SyncCoordinator) -> int:
    text = json.dumps(coordinator.export_all_data(), indent=2, ensure_ascii=False)
    if args.output:
        args.output.write_text(text, encoding="utf-8")
        logger.info(f"Backup written to {args.output}")
    else:
        print(text)
    return 0


async def _cmd_restore(args: argparse.Namespace, coordinator: SyncCoordinator) -> int:
    try:
        data = json.loads(args.file.read_text(encoding="utf-8"))
    except ValueError as e:
        logger.error(f"Backup file is not valid JSON: {e}")
        return 1

    result = await coordinator.import_data(data, push=args.push)
    print(f"Restored: {', '.join(result.collections) or 'nothing'}")
    if result.local_only:
        print(f"Imported locally, remote sync failed: {result.sync.error_message}")
        return 1
    return 0


async def _cmd_sync(args: argparse.Namespace, coordinator: SyncCoordinator) -> int:
    result = await coordinator.sync_all()
    if result.failed:
        print(f"Sync failed: {result.error_message}")
        return 1
    print(f"Synced {result.projects_synced} projects and {result.categories_synced} categories")
    return 0


async def _cmd_list(args: argparse.Namespace, coordinator: SyncCoordinator) -> int:
    if args.refresh:
        await coordinator.fetch_projects()

    engine = coordinator.query_engine
    engine.set_search(args.search)
    engine.state.filters = QueryFilters(
        language=args.language,
        category=args.category,
        sort=args.sort,
        show_favorites=args.favorites,
    )

    projects = coordinator.query()
    favorites = set(coordinator.get_favorites())
    for project in projects:
        marker = "*" if project.id in favorites else " "
        print(
            f"{marker} {project.full_name:40} {format_stars(project.stars):>7}  "
            f"{project.language or '-':12} {project.description[:60]}"
        )

    stats = catalog_stats(projects)
    print(
        f"{stats['project_count']} projects, {stats['language_count']} languages, "
        f"{format_stars(stats['total_stars'])} stars"
    )
    return 0


COMMANDS = {
    "import": _cmd_import,
    "export": _cmd_export,
    "restore": _cmd_restore,
    "sync": _cmd_sync,
    "list": _cmd_list,
}


async def run(args: argparse.Namespace) -> int:
    store = LocalCacheStore(DuckDBBackend(args.db or config.storage.db_path))
    store.init_storage(load_default_data(config.storage.seed_file))
    session = SessionContext.from_config()

    try:
        async with HttpRemoteStore(session) as remote:
            coordinator = SyncCoordinator(store, remote, session)
            return await COMMANDS[args.command](args, coordinator)
    finally:
        store.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(config.logging, level=args.log_level)

    try:
        return asyncio.run(run(args))
    except (CatalogError, ValidationError) as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"File error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
