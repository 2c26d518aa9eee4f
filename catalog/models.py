"""
Domain models for the repository catalog.

Provides closed dataclass records for Projects and Categories plus the
typed outcome values returned by the sync coordinator. Unknown keys coming
from the remote store, a backup file or the GitHub API are dropped at
``from_dict`` time, so every entity always has exactly the declared fields.
"""
import json
import time
from dataclasses import dataclass, field, asdict, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from catalog.exceptions import (
    RemoteConnectionError,
    RemoteUnavailableError,
    RemoteAPIError,
    RemoteDataError,
)


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

_last_generated_id = 0


def generate_id() -> str:
    """
    Generate a project id from the current time in milliseconds.

    Two calls within the same millisecond get consecutive values.
    """
    global _last_generated_id
    candidate = int(time.time() * 1000)
    if candidate <= _last_generated_id:
        candidate = _last_generated_id + 1
    _last_generated_id = candidate
    return str(candidate)


def today_str() -> str:
    """Current date as YYYY-MM-DD."""
    return date.today().isoformat()


def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD or full ISO timestamps; None when unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def decode_tags(raw: Any) -> List[str]:
    """
    Decode tags as stored by the remote store (JSON text in a single column).

    Lists pass through. Anything that does not decode to a list of strings
    yields an empty list; this never raises.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return [str(t) for t in raw]
    if not isinstance(raw, str):
        return []
    try:
        decoded = json.loads(raw)
    except (ValueError, TypeError):
        return []
    if not isinstance(decoded, list):
        return []
    return [str(t) for t in decoded]


def encode_tags(tags: Optional[List[str]]) -> str:
    """Encode tags for the remote store's text column."""
    return json.dumps(list(tags or []), ensure_ascii=False)


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ═══════════════════════════════════════════════════════════════════════════════
# ENTITIES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Project:
    """A cataloged repository."""
    id: str
    name: str
    owner: str
    description: str = ""
    github_url: str = ""
    stars: int = 0
    language: str = ""
    category: str = ""
    tags: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Fields that updates may never touch
    IMMUTABLE_FIELDS = ("id", "created_at")

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        """Create Project from a stored, remote or imported mapping."""
        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name") or "",
            owner=data.get("owner") or "",
            description=data.get("description") or "",
            github_url=data.get("github_url") or "",
            stars=max(_to_int(data.get("stars")), 0),
            language=data.get("language") or "",
            category=data.get("category") or "",
            tags=decode_tags(data.get("tags")),
            created_at=data.get("created_at") or None,
            updated_at=data.get("updated_at") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_remote(self) -> Dict[str, Any]:
        """Wire format for the remote store: tags as JSON text."""
        data = self.to_dict()
        data["tags"] = encode_tags(self.tags)
        return data

    def merged(self, updates: Dict[str, Any], touch: bool = True) -> "Project":
        """Return a copy with ``updates`` shallow-merged in."""
        changes = {
            k: v for k, v in updates.items()
            if k in self.field_names() and k not in self.IMMUTABLE_FIELDS
        }
        if "tags" in changes:
            changes["tags"] = decode_tags(changes["tags"])
        if "stars" in changes:
            changes["stars"] = max(_to_int(changes["stars"]), 0)
        if touch:
            changes["updated_at"] = today_str()
        return replace(self, **changes)

    @property
    def identity_key(self) -> tuple:
        """Case-insensitive (owner, name) used for duplicate detection."""
        return (self.owner.casefold(), self.name.casefold())

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def updated_date(self) -> Optional[date]:
        return parse_date(self.updated_at)


@dataclass
class Category:
    """A project category. ``id`` defaults to ``slug``."""
    id: str
    name: str
    slug: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        slug = data.get("slug") or data.get("id") or ""
        return cls(
            id=str(data.get("id") or slug),
            name=data.get("name") or "",
            slug=slug,
            description=data.get("description") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def merged(self, updates: Dict[str, Any]) -> "Category":
        changes = {
            k: v for k, v in updates.items()
            if k in ("name", "slug", "description")
        }
        return replace(self, **changes)


# Theme values recognized by the directory UI
THEMES = ("dark", "light")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "theme": "dark",
    "sortBy": "stars",
    "sortOrder": "desc",
}


# ═══════════════════════════════════════════════════════════════════════════════
# OUTCOMES
# ═══════════════════════════════════════════════════════════════════════════════

class OutcomeStatus(str, Enum):
    """How a completed write reached the stores."""
    SYNCED = "synced"
    LOCAL_ONLY = "local-only"


class ErrorKind(str, Enum):
    """Classification of a remote failure."""
    CONNECTION = "connection"
    UNAVAILABLE = "unavailable"
    API = "api"
    DATA = "data"
    UNKNOWN = "unknown"

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorKind":
        if isinstance(error, RemoteConnectionError):
            return cls.CONNECTION
        if isinstance(error, RemoteUnavailableError):
            return cls.UNAVAILABLE
        if isinstance(error, RemoteAPIError):
            return cls.API
        if isinstance(error, RemoteDataError):
            return cls.DATA
        return cls.UNKNOWN


@dataclass
class SyncOutcome:
    """
    Result of a coordinator write.

    Both statuses are successful completions; ``local_only`` tells the
    caller the remote store did not take the write.
    """
    status: OutcomeStatus
    entity: Optional[Any] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def remote(cls, entity: Any) -> "SyncOutcome":
        return cls(status=OutcomeStatus.SYNCED, entity=entity)

    @classmethod
    def local(cls, entity: Any, error: BaseException) -> "SyncOutcome":
        return cls(
            status=OutcomeStatus.LOCAL_ONLY,
            entity=entity,
            error_kind=ErrorKind.from_exception(error),
            error_message=str(error),
        )

    @property
    def ok(self) -> bool:
        return True

    @property
    def synced(self) -> bool:
        return self.status is OutcomeStatus.SYNCED

    @property
    def local_only(self) -> bool:
        return self.status is OutcomeStatus.LOCAL_ONLY


@dataclass
class SyncAllResult:
    """Counts from a bulk push of the local mirror to the remote store."""
    projects_synced: int = 0
    categories_synced: int = 0
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error_kind is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectsSynced": self.projects_synced,
            "categoriesSynced": self.categories_synced,
            "error": self.error_message,
        }
