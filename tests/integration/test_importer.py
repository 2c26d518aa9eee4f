"""
Integration tests for catalog/importer.py

Uses a scripted fetcher instead of the GitHub API and the fake remote store
from conftest.
"""
import pytest
from unittest.mock import AsyncMock, patch

from catalog.exceptions import RepoNotFoundError
from catalog.github import RepoInfo
from catalog.importer import BulkImporter, ImportItem
from catalog.models import Project


def _repo(owner, name, stars=100, topics=None):
    return RepoInfo(
        name=name,
        owner=owner,
        description=f"{name} by {owner}",
        github_url=f"https://github.com/{owner}/{name}",
        stars=stars,
        language="Python",
        topics=topics or [],
        created_at="2021-01-01",
        updated_at="2024-01-01",
    )


class ScriptedFetcher:
    """Returns canned RepoInfo per URL; unknown URLs are not found."""

    def __init__(self, repos):
        self.repos = repos
        self.requested = []

    async def __call__(self, url):
        self.requested.append(url)
        if url not in self.repos:
            raise RepoNotFoundError(f"Repository not found: {url}")
        return self.repos[url]


@pytest.fixture
def fetcher():
    return ScriptedFetcher({
        "https://github.com/acme/widget": _repo("acme", "widget"),
        "https://github.com/globex/alpha": _repo("globex", "alpha", stars=900, topics=["search"]),
        "globex/beta": _repo("globex", "beta"),
    })


class TestBulkImporter:
    """Tests for BulkImporter.run."""

    @pytest.mark.asyncio
    async def test_added_skipped_failed(self, coordinator, fake_remote, memory_store, fetcher):
        """One new repo, one already cataloged, one missing."""
        fake_remote.projects = {"1": Project(id="1", name="Widget", owner="ACME")}
        importer = BulkImporter(coordinator, fetcher, delay=0)

        report = await importer.run([
            "https://github.com/acme/widget",
            "https://github.com/globex/alpha",
            "https://github.com/nobody/missing",
        ])

        assert report.added_count == 1
        assert report.skipped_count == 1
        assert report.failed_count == 1
        assert report.total == 3
        assert report.items[2].success is False
        assert "not found" in report.items[2].error

        names = sorted(p.name for p in memory_store.get_projects())
        assert names == ["Widget", "alpha"]

    @pytest.mark.asyncio
    async def test_added_project_fields(self, coordinator, memory_store, fetcher):
        """Topics become tags and the input URL becomes github_url."""
        importer = BulkImporter(coordinator, fetcher, delay=0)

        await importer.run(["globex/beta", "https://github.com/globex/alpha"])

        projects = {p.name: p for p in memory_store.get_projects()}
        assert projects["alpha"].tags == ["search"]
        assert projects["alpha"].stars == 900
        assert projects["alpha"].created_at == "2021-01-01"
        assert projects["beta"].github_url == "globex/beta"

    @pytest.mark.asyncio
    async def test_blank_lines_dropped(self, coordinator, fetcher):
        importer = BulkImporter(coordinator, fetcher, delay=0)

        report = await importer.run(["", "   ", " https://github.com/acme/widget \n"])

        assert report.total == 1
        assert fetcher.requested == ["https://github.com/acme/widget"]

    @pytest.mark.asyncio
    async def test_duplicates_within_run(self, coordinator, fetcher):
        """The same repository listed twice is added once."""
        fetcher.repos["https://github.com/ACME/Widget.git"] = _repo("ACME", "Widget")
        importer = BulkImporter(coordinator, fetcher, delay=0)

        report = await importer.run([
            "https://github.com/acme/widget",
            "https://github.com/ACME/Widget.git",
        ])

        assert report.added_count == 1
        assert report.skipped_count == 1

    @pytest.mark.asyncio
    async def test_progress_callback(self, coordinator, fetcher):
        calls = []
        importer = BulkImporter(coordinator, fetcher, delay=0)

        await importer.run(
            ["https://github.com/acme/widget", "https://github.com/nobody/missing"],
            on_progress=lambda done, total, item: calls.append((done, total, item.success)),
        )

        assert calls == [(1, 2, True), (2, 2, False)]

    @pytest.mark.asyncio
    async def test_delay_between_items_only(self, coordinator, fetcher):
        importer = BulkImporter(coordinator, fetcher, delay=0.25)

        with patch("catalog.importer.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await importer.run([
                "https://github.com/acme/widget",
                "https://github.com/globex/alpha",
                "globex/beta",
            ])

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_remote_down_counts_local_only(self, coordinator, fake_remote, memory_store, fetcher):
        fake_remote.failing = True
        importer = BulkImporter(coordinator, fetcher, delay=0)

        report = await importer.run(["https://github.com/acme/widget", "globex/beta"])

        assert report.added_count == 2
        assert report.local_only_count == 2
        assert len(memory_store.get_projects()) == 2
        assert "saved locally only" in report.summary()

    @pytest.mark.asyncio
    async def test_invalid_metadata_is_skipped(self, coordinator, memory_store):
        """A fetched payload that fails validation is skipped, not failed."""
        async def fetch(url):
            return {"name": "orphan", "owner": "", "topics": ["x"]}

        importer = BulkImporter(coordinator, fetch, delay=0)
        report = await importer.run(["https://github.com/unknown/orphan"])

        assert report.skipped_count == 1
        assert report.failed_count == 0
        assert report.added_count == 0
        assert memory_store.get_projects() == []

    @pytest.mark.asyncio
    async def test_empty_input(self, coordinator, fetcher):
        report = await BulkImporter(coordinator, fetcher, delay=0).run([])
        assert report.total == 0
        assert report.added_count == 0
        assert isinstance(report.items, list)

    def test_import_item_defaults(self):
        item = ImportItem(success=False, url="x", error="boom")
        assert item.data is None
