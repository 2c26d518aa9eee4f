"""
Pytest configuration and shared fixtures.
"""
import pytest
from typing import Any, Dict, List

from catalog.exceptions import RemoteAPIError, RemoteConnectionError
from catalog.local_store import DuckDBBackend, LocalCacheStore, MemoryBackend
from catalog.models import Category, Project, SyncAllResult, today_str
from catalog.remote import RemoteStoreClient
from catalog.session import SessionContext
from catalog.sync import SyncCoordinator


class FakeRemoteStore(RemoteStoreClient):
    """
    In-memory remote store.

    Set ``failing = True`` to make every call raise RemoteConnectionError.
    Every call is recorded in ``calls`` as (method, args).
    """

    def __init__(self, projects: List[Project] = None, categories: List[Category] = None):
        self.projects: Dict[str, Project] = {p.id: p for p in projects or []}
        self.categories: Dict[str, Category] = {c.id: c for c in categories or []}
        self.failing = False
        self.calls: List[tuple] = []

    def _call(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if self.failing:
            raise RemoteConnectionError("Remote unreachable", details=method)

    def called(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def list_projects(self) -> List[Project]:
        self._call("list_projects")
        return list(self.projects.values())

    async def list_categories(self) -> List[Category]:
        self._call("list_categories")
        return list(self.categories.values())

    async def upsert_project(self, project: Project) -> Project:
        self._call("upsert_project", project)
        self.projects[project.id] = project
        return project

    async def upsert_category(self, category: Category) -> Category:
        self._call("upsert_category", category)
        self.categories[category.id] = category
        return category

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> None:
        """Rewrites every column of an existing row; name and owner are NOT NULL."""
        self._call("update_project", project_id, updates)
        if project_id not in self.projects:
            return
        if not updates.get("name") or not updates.get("owner"):
            raise RemoteAPIError(
                "Remote returned 500",
                details='{"error":"NOT NULL constraint failed"}',
                status_code=500,
            )
        created_at = self.projects[project_id].created_at
        self.projects[project_id] = Project.from_dict(
            {**updates, "id": project_id, "created_at": created_at, "updated_at": today_str()}
        )

    async def update_category(self, category_id: str, updates: Dict[str, Any]) -> None:
        self._call("update_category", category_id, updates)
        if category_id in self.categories:
            self.categories[category_id] = Category.from_dict({**updates, "id": category_id})

    async def delete_project(self, project_id: str) -> None:
        self._call("delete_project", project_id)
        self.projects.pop(project_id, None)

    async def delete_category(self, category_id: str) -> None:
        self._call("delete_category", category_id)
        self.categories.pop(category_id, None)

    async def bulk_upsert(self, projects: List[Project], categories: List[Category]) -> SyncAllResult:
        self._call("bulk_upsert", projects, categories)
        for project in projects:
            self.projects[project.id] = project
        for category in categories:
            self.categories[category.id] = category
        return SyncAllResult(projects_synced=len(projects), categories_synced=len(categories))


@pytest.fixture
def sample_project_data() -> Dict[str, Any]:
    """Project payload as entered by an operator."""
    return {
        "name": "widget",
        "owner": "acme",
        "description": "Widgets for everyone",
        "stars": 120,
        "language": "Python",
        "category": "tools",
        "tags": ["widgets", "cli"],
    }


@pytest.fixture
def sample_projects() -> List[Project]:
    """Projects with distinct stars, names and update dates."""
    return [
        Project(
            id="1", name="beta", owner="acme", description="HTTP client",
            stars=500, language="Python", category="web", tags=["http"],
            created_at="2024-01-01", updated_at="2024-03-01",
        ),
        Project(
            id="2", name="Alpha", owner="globex", description="Fast search",
            stars=10000, language="Rust", category="cli", tags=["search", "grep"],
            created_at="2023-06-01", updated_at="2024-05-01",
        ),
        Project(
            id="3", name="gamma", owner="initech", description="Terminal colors",
            stars=10, language="Go", category="cli", tags=["terminal"],
            created_at="2022-02-02", updated_at="2023-01-15",
        ),
    ]


@pytest.fixture
def sample_categories() -> List[Category]:
    return [
        Category(id="web", name="Web", slug="web", description="Web tooling"),
        Category(id="cli", name="CLI", slug="cli"),
    ]


@pytest.fixture
def memory_store() -> LocalCacheStore:
    """Local cache over a plain in-memory backend."""
    return LocalCacheStore(MemoryBackend(), prefix="test_")


@pytest.fixture
def duckdb_store():
    """Local cache over an in-memory DuckDB database."""
    store = LocalCacheStore(DuckDBBackend(":memory:"), prefix="test_")
    yield store
    store.close()


@pytest.fixture
def fake_remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(auth_token="dGVzdDp0ZXN0")


@pytest.fixture
def coordinator(memory_store, fake_remote, session) -> SyncCoordinator:
    return SyncCoordinator(memory_store, fake_remote, session)
