"""
Local cache store for the catalog mirror.

A persistent key/value medium holding JSON text under namespaced keys:
projects, categories, tags, favorites, settings and the data version
marker. Reads never raise: a missing key or malformed text yields the
caller's default.

Usage:
    store = LocalCacheStore(DuckDBBackend("data/catalog.duckdb"))
    store.init_storage(load_default_data("data/projects.json"))

    projects = store.get_projects()
    store.toggle_favorite(projects[0].id)
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import duckdb

from catalog.config import config
from catalog.exceptions import ValidationError
from catalog.models import Project, Category, DEFAULT_SETTINGS
from catalog.observability import get_logger
from catalog.validators import validate_theme

logger = get_logger(__name__)

CURRENT_DATA_VERSION = config.storage.data_version

# Logical keys, namespaced by the store prefix
PROJECTS = "projects"
CATEGORIES = "categories"
TAGS = "tags"
FAVORITES = "favorites"
SETTINGS = "settings"
DATA_VERSION = "data_version"

LOGICAL_KEYS = (PROJECTS, CATEGORIES, TAGS, FAVORITES, SETTINGS, DATA_VERSION)


# ═══════════════════════════════════════════════════════════════════════════════
# BACKENDS
# ═══════════════════════════════════════════════════════════════════════════════

class StorageBackend(ABC):
    """Raw text medium. Keys and values are plain strings."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return stored text or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All keys in the medium, including ones this app does not own."""

    def close(self) -> None:
        pass


class MemoryBackend(StorageBackend):
    """Process-local backend, mostly for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class DuckDBBackend(StorageBackend):
    """
    DuckDB-backed medium: a single key/value table.

    Pass ":memory:" for an ephemeral database.
    """

    def __init__(self, db_path: Union[str, Path] = None):
        self.db_path = str(db_path or config.storage.db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection = duckdb.connect(self.db_path)
        self._init_schema()
        logger.debug(f"DuckDB cache opened: {self.db_path}")

    def _init_schema(self) -> None:
        self._connection.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key VARCHAR PRIMARY KEY,
                value VARCHAR NOT NULL,
                updated_at TIMESTAMP DEFAULT current_timestamp
            )
        """)

    def get_item(self, key: str) -> Optional[str]:
        row = self._connection.execute(
            "SELECT value FROM kv_store WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self._connection.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, current_timestamp)",
            [key, value],
        )

    def remove_item(self, key: str) -> None:
        self._connection.execute("DELETE FROM kv_store WHERE key = ?", [key])

    def keys(self) -> List[str]:
        return [row[0] for row in self._connection.execute("SELECT key FROM kv_store").fetchall()]

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.debug("DuckDB cache closed")


# ═══════════════════════════════════════════════════════════════════════════════
# STORE
# ═══════════════════════════════════════════════════════════════════════════════

def load_default_data(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a seed data file. A missing or malformed file yields {}."""
    path = Path(path)
    if not path.exists():
        logger.info(f"No seed data at {path}")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        logger.warning(f"Seed data at {path} is not valid JSON: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class LocalCacheStore:
    """
    Typed views over a StorageBackend.

    Every logical key is stored as ``<prefix><key>`` so unrelated state in
    the same medium is never read or cleared.
    """

    def __init__(self, backend: StorageBackend, prefix: str = None):
        self.backend = backend
        self.prefix = config.storage.key_prefix if prefix is None else prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # ─── raw access ────────────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        """Read and parse a value; missing or malformed data returns default."""
        try:
            raw = self.backend.get_item(self._key(key))
        except duckdb.Error as e:
            logger.error(f"Cache read failed for {key}: {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Malformed cache entry {key}, using default: {e}")
            return default

    def set(self, key: str, value: Any) -> bool:
        """Serialize and write a value. Returns False on failure."""
        try:
            text = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Cache value for {key} is not serializable: {e}")
            return False
        try:
            self.backend.set_item(self._key(key), text)
        except duckdb.Error as e:
            logger.error(f"Cache write failed for {key}: {e}")
            return False
        return True

    def remove(self, key: str) -> None:
        try:
            self.backend.remove_item(self._key(key))
        except duckdb.Error as e:
            logger.error(f"Cache delete failed for {key}: {e}")

    def clear(self) -> None:
        """Remove every key in this store's namespace."""
        for key in self.backend.keys():
            if key.startswith(self.prefix):
                self.backend.remove_item(key)

    # ─── projects ──────────────────────────────────────────────────────────────

    def get_projects(self) -> List[Project]:
        raw = self.get(PROJECTS, [])
        if not isinstance(raw, list):
            logger.warning("Cached projects are not a list, ignoring")
            return []
        return [Project.from_dict(item) for item in raw if isinstance(item, dict)]

    def set_projects(self, projects: Iterable[Union[Project, Dict[str, Any]]]) -> bool:
        return self.set(PROJECTS, [_as_project(p).to_dict() for p in projects])

    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self.get_projects():
            if project.id == project_id:
                return project
        return None

    def add_project(self, project: Project) -> Project:
        projects = self.get_projects()
        projects.append(project)
        self.set_projects(projects)
        return project

    def update_project(self, project_id: str, updates: Dict[str, Any]) -> Optional[Project]:
        """Shallow-merge updates and refresh updated_at. None if id is unknown."""
        projects = self.get_projects()
        for index, project in enumerate(projects):
            if project.id == project_id:
                projects[index] = project.merged(updates)
                self.set_projects(projects)
                return projects[index]
        return None

    def delete_project(self, project_id: str) -> bool:
        projects = self.get_projects()
        remaining = [p for p in projects if p.id != project_id]
        if len(remaining) == len(projects):
            return False
        self.set_projects(remaining)
        return True

    def projects_in_category(self, category_id: str) -> List[Project]:
        return [p for p in self.get_projects() if p.category == category_id]

    # ─── categories ────────────────────────────────────────────────────────────

    def get_categories(self) -> List[Category]:
        raw = self.get(CATEGORIES, [])
        if not isinstance(raw, list):
            logger.warning("Cached categories are not a list, ignoring")
            return []
        return [Category.from_dict(item) for item in raw if isinstance(item, dict)]

    def set_categories(self, categories: Iterable[Union[Category, Dict[str, Any]]]) -> bool:
        return self.set(CATEGORIES, [_as_category(c).to_dict() for c in categories])

    def add_category(self, category: Category) -> Category:
        categories = self.get_categories()
        categories.append(category)
        self.set_categories(categories)
        return category

    def update_category(self, category_id: str, updates: Dict[str, Any]) -> Optional[Category]:
        categories = self.get_categories()
        for index, category in enumerate(categories):
            if category.id == category_id:
                categories[index] = category.merged(updates)
                self.set_categories(categories)
                return categories[index]
        return None

    def delete_category(self, category_id: str) -> bool:
        categories = self.get_categories()
        remaining = [c for c in categories if c.id != category_id]
        if len(remaining) == len(categories):
            return False
        self.set_categories(remaining)
        return True

    # ─── tags ──────────────────────────────────────────────────────────────────

    def get_tags(self) -> List[str]:
        raw = self.get(TAGS, [])
        return [str(t) for t in raw] if isinstance(raw, list) else []

    def set_tags(self, tags: Iterable[str]) -> bool:
        return self.set(TAGS, list(tags))

    # ─── favorites ─────────────────────────────────────────────────────────────

    def get_favorites(self) -> List[str]:
        raw = self.get(FAVORITES, [])
        return [str(f) for f in raw] if isinstance(raw, list) else []

    def set_favorites(self, favorites: Iterable[str]) -> bool:
        unique = list(dict.fromkeys(str(f) for f in favorites))
        return self.set(FAVORITES, unique)

    def toggle_favorite(self, project_id: str) -> bool:
        """Flip membership. Returns the new state (True = now a favorite)."""
        favorites = self.get_favorites()
        if project_id in favorites:
            favorites.remove(project_id)
            self.set_favorites(favorites)
            return False
        favorites.append(project_id)
        self.set_favorites(favorites)
        return True

    def is_favorite(self, project_id: str) -> bool:
        return project_id in self.get_favorites()

    # ─── settings ──────────────────────────────────────────────────────────────

    def get_settings(self) -> Dict[str, Any]:
        raw = self.get(SETTINGS, None)
        if not isinstance(raw, dict):
            return dict(DEFAULT_SETTINGS)
        return dict(raw)

    def set_settings(self, settings: Dict[str, Any]) -> bool:
        """Shallow-merge into the existing settings; never replaces them."""
        if not isinstance(settings, dict):
            raise ValidationError("settings", "Must be a mapping", settings)
        if "theme" in settings:
            validate_theme(settings["theme"])
        return self.set(SETTINGS, {**self.get_settings(), **settings})

    # ─── lifecycle ─────────────────────────────────────────────────────────────

    def init_storage(self, default_data: Optional[Dict[str, Any]] = None,
                     version: str = CURRENT_DATA_VERSION) -> bool:
        """
        Seed the cache once per data version.

        The marker only advances when there was seed data to write, so a
        seed file that appears later is still picked up for this version.

        Returns:
            True if seed data was written (first run or version bump)
        """
        stored_version = self.get(DATA_VERSION)
        if stored_version == version:
            return False

        if not default_data:
            logger.warning(
                f"No seed data for data version {version}, marker left at {stored_version}"
            )
            return False

        if default_data.get("projects") is not None:
            self.set_projects(default_data["projects"])
        if default_data.get("categories") is not None:
            self.set_categories(default_data["categories"])
        if default_data.get("tags") is not None:
            self.set_tags(default_data["tags"])
        self.set(DATA_VERSION, version)
        logger.info(
            f"Cache seeded for data version {version}",
            extra={"previous_version": stored_version}
        )
        return True

    def export_all_data(self) -> Dict[str, Any]:
        """Whole-state snapshot usable as a backup file."""
        return {
            "projects": [p.to_dict() for p in self.get_projects()],
            "categories": [c.to_dict() for c in self.get_categories()],
            "tags": self.get_tags(),
            "favorites": self.get_favorites(),
            "settings": self.get_settings(),
            "exportedAt": _utc_now_iso(),
        }

    def import_data(self, data: Dict[str, Any]) -> List[str]:
        """
        Overwrite every collection present in ``data``.

        Absent collections are left untouched; settings are merged.
        The whole payload is checked before anything is written.

        Returns:
            Names of the collections that were written
        """
        if not isinstance(data, dict):
            raise ValidationError("data", "Backup must be a JSON object", type(data).__name__)

        for key in (PROJECTS, CATEGORIES, TAGS, FAVORITES):
            if data.get(key) is not None and not isinstance(data[key], list):
                raise ValidationError(key, "Must be a list", type(data[key]).__name__)
        if data.get(SETTINGS) is not None and not isinstance(data[SETTINGS], dict):
            raise ValidationError(SETTINGS, "Must be an object", type(data[SETTINGS]).__name__)
        if isinstance(data.get(SETTINGS), dict) and "theme" in data[SETTINGS]:
            validate_theme(data[SETTINGS]["theme"])

        written = []
        if data.get(PROJECTS) is not None:
            self.set_projects(p for p in data[PROJECTS] if isinstance(p, (dict, Project)))
            written.append(PROJECTS)
        if data.get(CATEGORIES) is not None:
            self.set_categories(c for c in data[CATEGORIES] if isinstance(c, (dict, Category)))
            written.append(CATEGORIES)
        if data.get(TAGS) is not None:
            self.set_tags(data[TAGS])
            written.append(TAGS)
        if data.get(FAVORITES) is not None:
            self.set_favorites(data[FAVORITES])
            written.append(FAVORITES)
        if data.get(SETTINGS) is not None:
            self.set_settings(data[SETTINGS])
            written.append(SETTINGS)

        logger.info(f"Imported backup collections: {', '.join(written) or 'none'}")
        return written

    def close(self) -> None:
        self.backend.close()


def _as_project(value: Union[Project, Dict[str, Any]]) -> Project:
    return value if isinstance(value, Project) else Project.from_dict(value)


def _as_category(value: Union[Category, Dict[str, Any]]) -> Category:
    return value if isinstance(value, Category) else Category.from_dict(value)
