"""
Sync coordinator between the remote store and the local cache.

Every operation makes one remote attempt and falls back to the local mirror
when that attempt fails. The local mirror is always updated, so it doubles
as read cache and offline fallback.

Policy per operation family:
- Reads: remote result overwrites the local collection; on failure the
  cached collection is returned unchanged.
- Creates: ids and dates are assigned before any network call; the
  remote-returned entity is cached on success, the local one on failure.
- Updates: remote attempted independently; local entry merged either way.
- Deletes: local entry removed regardless of the remote outcome.

Remote failures never propagate. Validation and duplicate errors are raised
before either store is written.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog.exceptions import (
    CategoryInUseError,
    DuplicateEntityError,
    RemoteStoreError,
)
from catalog.local_store import LocalCacheStore
from catalog.models import (
    Category,
    ErrorKind,
    Project,
    SyncAllResult,
    SyncOutcome,
    generate_id,
    today_str,
)
from catalog.observability import get_logger, operation_scope
from catalog.query import QueryEngine
from catalog.remote import RemoteStoreClient
from catalog.session import SessionContext
from catalog.validators import (
    validate_category_data,
    validate_category_updates,
    validate_project_data,
    validate_project_updates,
)

logger = get_logger(__name__)


@dataclass
class RestoreResult:
    """Outcome of restoring a backup, with the optional remote push."""
    collections: List[str] = field(default_factory=list)
    sync: Optional[SyncAllResult] = None

    @property
    def local_only(self) -> bool:
        return self.sync is not None and self.sync.failed


class SyncCoordinator:
    """
    Reads and writes across the remote store and the local cache.

    Usage:
        coordinator = SyncCoordinator(store, remote, session)
        outcome = await coordinator.add_project({"owner": "acme", "name": "widget"})
        if outcome.local_only:
            print("Saved locally, remote sync failed")
    """

    def __init__(
        self,
        store: LocalCacheStore,
        remote: RemoteStoreClient,
        session: SessionContext,
    ):
        self.store = store
        self.remote = remote
        self.session = session
        self.query_engine = QueryEngine(session.query)

    def _log_fallback(self, operation: str, error: RemoteStoreError) -> None:
        logger.warning(
            f"Remote {operation} failed, using local mirror: {error}",
            extra={
                "operation": operation,
                "error_kind": ErrorKind.from_exception(error).value,
            }
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════════

    async def fetch_projects(self) -> List[Project]:
        """Remote projects (refreshing the cache), or cached ones on failure."""
        with operation_scope("fetch_projects"):
            try:
                projects = await self.remote.list_projects()
            except RemoteStoreError as e:
                self._log_fallback("list_projects", e)
                return self.store.get_projects()

            self.store.set_projects(projects)
            logger.debug(f"Project cache refreshed ({len(projects)} projects)")
            return projects

    async def fetch_categories(self) -> List[Category]:
        """Remote categories (refreshing the cache), or cached ones on failure."""
        with operation_scope("fetch_categories"):
            try:
                categories = await self.remote.list_categories()
            except RemoteStoreError as e:
                self._log_fallback("list_categories", e)
                return self.store.get_categories()

            self.store.set_categories(categories)
            logger.debug(f"Category cache refreshed ({len(categories)} categories)")
            return categories

    # ═══════════════════════════════════════════════════════════════════════════
    # DUPLICATE GUARDS
    # ═══════════════════════════════════════════════════════════════════════════

    async def find_duplicate_project(self, owner: str, name: str) -> Optional[Project]:
        """
        Existing project with the same (owner, name), case-insensitively.

        Always reads through ``fetch_projects`` so the freshest reachable
        data is checked.
        """
        key = (owner.strip().casefold(), name.strip().casefold())
        for project in await self.fetch_projects():
            if project.identity_key == key:
                return project
        return None

    async def find_duplicate_category(self, slug: str, category_id: str = None) -> Optional[Category]:
        """Existing category whose slug or id equals the new slug or id."""
        wanted = {slug.casefold()}
        if category_id:
            wanted.add(category_id.casefold())
        for category in await self.fetch_categories():
            if category.slug.casefold() in wanted or category.id.casefold() in wanted:
                return category
        return None

    # ═══════════════════════════════════════════════════════════════════════════
    # PROJECTS
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _new_project(data: Dict[str, Any]) -> Project:
        today = today_str()
        project = Project.from_dict({
            **data,
            "id": data.get("id") or generate_id(),
            "created_at": data.get("created_at") or today,
        })
        project.updated_at = today
        return project

    async def add_project(self, data: Dict[str, Any]) -> SyncOutcome:
        """
        Create a project.

        Raises:
            ValidationError: Missing or malformed fields
            DuplicateEntityError: Same owner/name already cataloged
        """
        with operation_scope("add_project"):
            cleaned = validate_project_data(data)

            existing = await self.find_duplicate_project(cleaned["owner"], cleaned["name"])
            if existing:
                raise DuplicateEntityError(
                    "project", f"{cleaned['owner']}/{cleaned['name']}", existing.id
                )

            project = self._new_project(cleaned)

            try:
                stored = await self.remote.upsert_project(project)
            except RemoteStoreError as e:
                self._log_fallback("upsert_project", e)
                self.store.add_project(project)
                return SyncOutcome.local(project, e)

            self.store.add_project(stored)
            logger.info(f"Project added: {stored.full_name}", extra={"project_id": stored.id})
            return SyncOutcome.remote(stored)

    async def update_project(self, project_id: str, updates: Dict[str, Any]) -> SyncOutcome:
        """
        Update a project on both stores.

        The remote replaces the whole row, so it receives the full merged
        record. When the id is not in the local mirror only ``updates`` are
        sent and ``outcome.entity`` is None.
        """
        with operation_scope("update_project", project_id=project_id):
            cleaned = validate_project_updates(updates)
            for key in Project.IMMUTABLE_FIELDS:
                cleaned.pop(key, None)

            current = self.store.get_project(project_id)
            if current is not None:
                body = current.merged(cleaned).to_remote()
                body.pop("id")
            else:
                body = cleaned

            error = None
            try:
                await self.remote.update_project(project_id, body)
            except RemoteStoreError as e:
                self._log_fallback("update_project", e)
                error = e

            updated = self.store.update_project(project_id, cleaned)
            if updated is None:
                logger.info(f"Project {project_id} not in local mirror, nothing merged")

            if error is not None:
                return SyncOutcome.local(updated, error)
            return SyncOutcome.remote(updated)

    async def delete_project(self, project_id: str) -> SyncOutcome:
        """
        Delete a project. The local entry is removed even if the remote
        delete fails; deleting an unknown id is not an error.
        """
        with operation_scope("delete_project", project_id=project_id):
            removed = self.store.get_project(project_id)

            error = None
            try:
                await self.remote.delete_project(project_id)
            except RemoteStoreError as e:
                self._log_fallback("delete_project", e)
                error = e

            self.store.delete_project(project_id)

            if error is not None:
                return SyncOutcome.local(removed, error)
            return SyncOutcome.remote(removed)

    # ═══════════════════════════════════════════════════════════════════════════
    # CATEGORIES
    # ═══════════════════════════════════════════════════════════════════════════

    async def add_category(self, data: Dict[str, Any]) -> SyncOutcome:
        """
        Create a category; ``id`` defaults to the slug.

        Raises:
            ValidationError: Missing name/slug or malformed slug
            DuplicateEntityError: Slug or id already used
        """
        with operation_scope("add_category"):
            cleaned = validate_category_data(data)

            existing = await self.find_duplicate_category(cleaned["slug"], cleaned["id"])
            if existing:
                raise DuplicateEntityError("category", cleaned["slug"], existing.id)

            category = Category.from_dict(cleaned)

            try:
                stored = await self.remote.upsert_category(category)
            except RemoteStoreError as e:
                self._log_fallback("upsert_category", e)
                self.store.add_category(category)
                return SyncOutcome.local(category, e)

            self.store.add_category(stored)
            logger.info(f"Category added: {stored.id}")
            return SyncOutcome.remote(stored)

    async def update_category(self, category_id: str, updates: Dict[str, Any]) -> SyncOutcome:
        with operation_scope("update_category", category_id=category_id):
            cleaned = validate_category_updates(updates)
            cleaned.pop("id", None)

            current = next(
                (c for c in self.store.get_categories() if c.id == category_id), None
            )
            if current is not None:
                body = current.merged(cleaned).to_dict()
                body.pop("id")
            else:
                body = cleaned

            error = None
            try:
                await self.remote.update_category(category_id, body)
            except RemoteStoreError as e:
                self._log_fallback("update_category", e)
                error = e

            updated = self.store.update_category(category_id, cleaned)

            if error is not None:
                return SyncOutcome.local(updated, error)
            return SyncOutcome.remote(updated)

    async def projects_in_category(self, category_id: str) -> List[Project]:
        """Projects referencing a category, read through ``fetch_projects``."""
        return [p for p in await self.fetch_projects() if p.category == category_id]

    async def category_in_use(self, category_id: str) -> bool:
        return bool(await self.projects_in_category(category_id))

    async def delete_category(self, category_id: str, force: bool = False) -> SyncOutcome:
        """
        Delete a category.

        Raises:
            CategoryInUseError: Projects still reference it and force is False
        """
        with operation_scope("delete_category", category_id=category_id):
            if not force:
                in_use = await self.projects_in_category(category_id)
                if in_use:
                    raise CategoryInUseError(category_id, [p.id for p in in_use])

            removed = next(
                (c for c in self.store.get_categories() if c.id == category_id), None
            )

            error = None
            try:
                await self.remote.delete_category(category_id)
            except RemoteStoreError as e:
                self._log_fallback("delete_category", e)
                error = e

            self.store.delete_category(category_id)

            if error is not None:
                return SyncOutcome.local(removed, error)
            return SyncOutcome.remote(removed)

    # ═══════════════════════════════════════════════════════════════════════════
    # BULK
    # ═══════════════════════════════════════════════════════════════════════════

    async def sync_all(self) -> SyncAllResult:
        """
        Push the whole local mirror to the remote store (insert-or-replace
        by id). Safe to retry in full.
        """
        with operation_scope("sync_all"):
            projects = self.store.get_projects()
            categories = self.store.get_categories()
            logger.info(
                f"Pushing {len(projects)} projects and {len(categories)} categories"
            )

            try:
                result = await self.remote.bulk_upsert(projects, categories)
            except RemoteStoreError as e:
                self._log_fallback("bulk_upsert", e)
                return SyncAllResult(
                    error_kind=ErrorKind.from_exception(e),
                    error_message=str(e),
                )

            skipped = (len(projects) - result.projects_synced) + (len(categories) - result.categories_synced)
            if skipped > 0:
                logger.warning(f"Remote skipped {skipped} entities during bulk sync")
            logger.info(
                "Bulk sync completed",
                extra={
                    "projects_synced": result.projects_synced,
                    "categories_synced": result.categories_synced,
                }
            )
            return result

    def export_all_data(self) -> Dict[str, Any]:
        return self.store.export_all_data()

    async def import_data(self, data: Dict[str, Any], push: bool = False) -> RestoreResult:
        """
        Restore a backup into the local mirror, optionally pushing it to the
        remote store afterwards.
        """
        with operation_scope("import_data"):
            collections = self.store.import_data(data)
            result = RestoreResult(collections=collections)
            if push:
                result.sync = await self.sync_all()
                if result.sync.failed:
                    logger.warning("Backup restored locally, remote push failed")
            return result

    # ═══════════════════════════════════════════════════════════════════════════
    # LOCAL-ONLY STATE
    # ═══════════════════════════════════════════════════════════════════════════

    def toggle_favorite(self, project_id: str) -> bool:
        return self.store.toggle_favorite(project_id)

    def get_favorites(self) -> List[str]:
        return self.store.get_favorites()

    def get_settings(self) -> Dict[str, Any]:
        return self.store.get_settings()

    def set_settings(self, settings: Dict[str, Any]) -> bool:
        return self.store.set_settings(settings)

    def query(self) -> List[Project]:
        """Run the session's current query over the local mirror."""
        return self.query_engine.run(self.store.get_projects(), self.store.get_favorites())
