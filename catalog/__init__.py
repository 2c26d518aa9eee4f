"""
Local-first catalog of GitHub repositories.

This package contains:
- exceptions: Custom exception hierarchy
- models: Project/Category records and typed sync outcomes
- local_store: DuckDB-backed local mirror
- remote: Remote store client
- sync: Sync coordinator between the two stores
- query: Search, facet filters and sorting
- github / importer: GitHub metadata lookups and bulk import
- config: Centralized configuration
"""

# Import in dependency order
from catalog.exceptions import (
    CatalogError,
    RemoteStoreError,
    GitHubError,
    CategoryInUseError,
    ValidationError,
    DuplicateEntityError,
)

from catalog.models import (
    Project,
    Category,
    SyncOutcome,
    SyncAllResult,
    OutcomeStatus,
    ErrorKind,
)

from catalog.config import config

from catalog.local_store import LocalCacheStore, DuckDBBackend, MemoryBackend
from catalog.query import QueryFilters, QueryState, QueryEngine, run_query
from catalog.session import SessionContext
from catalog.remote import RemoteStoreClient, HttpRemoteStore
from catalog.sync import SyncCoordinator
from catalog.github import GitHubClient, RepoInfo, parse_github_url
from catalog.importer import BulkImporter, ImportReport

__all__ = [
    # Exceptions
    "CatalogError",
    "RemoteStoreError",
    "GitHubError",
    "CategoryInUseError",
    "ValidationError",
    "DuplicateEntityError",
    # Models
    "Project",
    "Category",
    "SyncOutcome",
    "SyncAllResult",
    "OutcomeStatus",
    "ErrorKind",
    # Stores
    "LocalCacheStore",
    "DuckDBBackend",
    "MemoryBackend",
    "RemoteStoreClient",
    "HttpRemoteStore",
    # Sync & query
    "SyncCoordinator",
    "SessionContext",
    "QueryFilters",
    "QueryState",
    "QueryEngine",
    "run_query",
    # GitHub
    "GitHubClient",
    "RepoInfo",
    "parse_github_url",
    "BulkImporter",
    "ImportReport",
    # Config
    "config",
]
