"""
Query engine for the catalog directory.

Stateless pipeline over a list of projects, each stage callable on its own:

    search_projects  ->  apply_filters  ->  sort_projects

``run_query`` composes them in that fixed order. None of the functions
mutate their input.
"""
import unicodedata
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from catalog.models import Project

ALL = "all"

DEFAULT_SORT = "stars-desc"


@dataclass
class QueryFilters:
    """Facet filters and sort key. ``"all"`` / ``False`` mean no constraint."""
    language: str = ALL
    category: str = ALL
    sort: str = DEFAULT_SORT
    show_favorites: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QueryFilters":
        """Accepts both snake_case and the directory page's camelCase keys."""
        data = data or {}
        show_favorites = data.get("show_favorites", data.get("showFavorites", False))
        return cls(
            language=data.get("language") or ALL,
            category=data.get("category") or ALL,
            sort=data.get("sort") or DEFAULT_SORT,
            show_favorites=bool(show_favorites),
        )


@dataclass
class QueryState:
    """Current search text and filters of a session."""
    search_query: str = ""
    filters: QueryFilters = field(default_factory=QueryFilters)


# ═══════════════════════════════════════════════════════════════════════════════
# STAGES
# ═══════════════════════════════════════════════════════════════════════════════

def _matches(project: Project, needle: str) -> bool:
    if needle in project.name.casefold():
        return True
    if needle in project.owner.casefold():
        return True
    if project.description and needle in project.description.casefold():
        return True
    if project.language and needle in project.language.casefold():
        return True
    return any(needle in tag.casefold() for tag in project.tags)


def search_projects(projects: List[Project], query: Optional[str]) -> List[Project]:
    """
    Case-insensitive substring search over name, owner, description,
    language and tags.

    A blank query returns ``projects`` itself.
    """
    if not query or not query.strip():
        return projects

    needle = query.strip().casefold()
    return [p for p in projects if _matches(p, needle)]


def apply_filters(
    projects: List[Project],
    filters: QueryFilters,
    favorites: Iterable[str] = (),
) -> List[Project]:
    """
    Apply language, category and favorites filters as AND-ed predicates.

    Each predicate is independent, so their order does not change the result.
    """
    if isinstance(filters, dict):
        filters = QueryFilters.from_dict(filters)

    result = list(projects)

    if filters.language and filters.language != ALL:
        result = [p for p in result if p.language == filters.language]

    if filters.category and filters.category != ALL:
        result = [p for p in result if p.category == filters.category]

    if filters.show_favorites:
        favorite_ids = set(favorites)
        result = [p for p in result if p.id in favorite_ids]

    return result


def _name_key(project: Project) -> Tuple[str, str, str]:
    """
    Collation key for names: letters compare by their base form first, so
    "éclair" sorts between "apple" and "zeta" whatever the process locale.
    """
    folded = unicodedata.normalize("NFKD", project.name.casefold())
    base = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return base, folded, project.name


def _updated_key(project: Project) -> date:
    return project.updated_date or date.min


def _stars_key(project: Project) -> int:
    return project.stars


SORT_KEYS: Dict[str, Callable[[Project], Any]] = {
    "stars": _stars_key,
    "name": _name_key,
    "updated": _updated_key,
}


def parse_sort(sort: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split ``<field>-<direction>``; None when the key is not recognized."""
    if not sort or "-" not in sort:
        return None
    field_name, _, direction = sort.partition("-")
    if field_name not in SORT_KEYS or direction not in ("asc", "desc"):
        return None
    return field_name, direction


def sort_projects(projects: List[Project], sort: Optional[str]) -> List[Project]:
    """
    Stable sort by ``stars``, ``name`` or ``updated``.

    Unknown keys keep the original order. Always returns a new list.
    """
    parsed = parse_sort(sort)
    if parsed is None:
        return list(projects)

    field_name, direction = parsed
    return sorted(projects, key=SORT_KEYS[field_name], reverse=(direction == "desc"))


def run_query(
    projects: List[Project],
    query: Optional[str] = None,
    filters: Optional[QueryFilters] = None,
    favorites: Iterable[str] = (),
) -> List[Project]:
    """Text filter, then facet filter, then sort."""
    filters = filters or QueryFilters()
    result = search_projects(projects, query)
    result = apply_filters(result, filters, favorites)
    return sort_projects(result, filters.sort)


class QueryEngine:
    """
    Runs the pipeline with a session's query state.

    The engine holds a reference to the state object it was given, so
    updates made through the session are seen on the next ``run``.
    """

    def __init__(self, state: QueryState):
        self.state = state

    def run(self, projects: List[Project], favorites: Iterable[str] = ()) -> List[Project]:
        return run_query(projects, self.state.search_query, self.state.filters, favorites)

    def set_search(self, query: str) -> None:
        self.state.search_query = query or ""

    def set_filters(self, **changes: Any) -> None:
        for key, value in changes.items():
            if not hasattr(self.state.filters, key):
                raise AttributeError(f"Unknown filter: {key}")
            setattr(self.state.filters, key, value)


# ═══════════════════════════════════════════════════════════════════════════════
# DIRECTORY HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def extract_languages(projects: Iterable[Project]) -> List[str]:
    """Sorted unique non-empty languages."""
    return sorted({p.language for p in projects if p.language})


def catalog_stats(projects: List[Project]) -> Dict[str, int]:
    """Headline numbers shown above the directory."""
    return {
        "project_count": len(projects),
        "language_count": len(extract_languages(projects)),
        "total_stars": sum(p.stars for p in projects),
    }
