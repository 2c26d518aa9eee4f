"""
Bulk importer: turns a list of GitHub URLs into catalog projects.

Two phases:
1. Fetch metadata for each URL, strictly one after another with a short
   pause between calls to stay under the GitHub rate limit.
2. Refresh the existing projects once, then add every fetched repository
   that is not already cataloged (or already added earlier in this run).

Individual failures never abort the run; they are counted and reported.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from catalog.config import config
from catalog.exceptions import CatalogError, ValidationError
from catalog.github import RepoInfo
from catalog.observability import get_logger, operation_scope, Timer
from catalog.sync import SyncCoordinator

logger = get_logger(__name__)

Fetcher = Callable[[str], Awaitable[Union[RepoInfo, Dict[str, Any]]]]


@dataclass
class ImportItem:
    """Fetch result for one URL."""
    success: bool
    url: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


ProgressCallback = Callable[[int, int, ImportItem], None]


@dataclass
class ImportReport:
    """Summary of a bulk import run."""
    added_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    local_only_count: int = 0
    items: List[ImportItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    def summary(self) -> str:
        text = (
            f"{self.added_count} added, {self.skipped_count} skipped, "
            f"{self.failed_count} failed"
        )
        if self.local_only_count:
            text += f" ({self.local_only_count} saved locally only)"
        return text


def _project_data(fetched: Union[RepoInfo, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(fetched, RepoInfo):
        return fetched.to_project_data()
    data = dict(fetched)
    if "topics" in data and "tags" not in data:
        data["tags"] = data.pop("topics")
    return data


def _clean_urls(urls: Iterable[str]) -> List[str]:
    return [url.strip() for url in urls if url and url.strip()]


class BulkImporter:
    """
    Imports GitHub repositories through the sync coordinator.

    Args:
        coordinator: Sync coordinator used for the add phase
        fetcher: Async callable mapping a URL to repository metadata,
            typically ``GitHubClient.get_repo_info_from_url``
        delay: Seconds to wait between fetches
    """

    def __init__(self, coordinator: SyncCoordinator, fetcher: Fetcher, delay: float = None):
        self.coordinator = coordinator
        self.fetcher = fetcher
        self.delay = config.importer.delay_seconds if delay is None else delay

    async def fetch_all(
        self,
        urls: List[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ImportItem]:
        """Fetch metadata for every URL in order."""
        items: List[ImportItem] = []
        total = len(urls)

        for index, url in enumerate(urls):
            try:
                fetched = await self.fetcher(url)
                item = ImportItem(success=True, url=url, data=_project_data(fetched))
            except CatalogError as e:
                logger.warning(f"Could not fetch {url}: {e}")
                item = ImportItem(success=False, url=url, error=str(e))

            items.append(item)
            if on_progress:
                on_progress(index + 1, total, item)

            if index < total - 1 and self.delay > 0:
                await asyncio.sleep(self.delay)

        return items

    async def run(
        self,
        urls: Iterable[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImportReport:
        """
        Import the given URLs.

        Returns:
            ImportReport with per-item results and counts
        """
        with operation_scope("bulk_import"):
            cleaned = _clean_urls(urls)
            logger.info(f"Bulk import started ({len(cleaned)} URLs)")

            report = ImportReport()
            with Timer("bulk_import_fetch", logger):
                report.items = await self.fetch_all(cleaned, on_progress)
            report.failed_count = sum(1 for item in report.items if not item.success)

            existing = await self.coordinator.fetch_projects()
            seen = {project.identity_key for project in existing}

            for item in report.items:
                if not item.success:
                    continue

                data = {**item.data, "github_url": item.url}
                key = (
                    str(data.get("owner") or "").strip().casefold(),
                    str(data.get("name") or "").strip().casefold(),
                )
                if key in seen:
                    report.skipped_count += 1
                    continue

                try:
                    outcome = await self.coordinator.add_project(data)
                except ValidationError as e:
                    # DuplicateEntityError included
                    logger.info(f"Skipping {item.url}: {e}")
                    report.skipped_count += 1
                    continue

                seen.add(key)
                report.added_count += 1
                if outcome.local_only:
                    report.local_only_count += 1

            logger.info(
                f"Bulk import finished: {report.summary()}",
                extra={
                    "added": report.added_count,
                    "skipped": report.skipped_count,
                    "failed": report.failed_count,
                }
            )
            return report
