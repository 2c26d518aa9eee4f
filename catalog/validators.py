"""
Input validation functions for catalog writes.

All validators raise ValidationError on invalid input. They run before the
sync coordinator touches either store, so a rejected write never leaves a
partial change behind.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from catalog.exceptions import ValidationError
from catalog.models import THEMES


SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")

SORT_FIELDS = {"stars", "name", "updated"}
SORT_DIRECTIONS = {"asc", "desc"}

MAX_NAME_LENGTH = 255


def validate_required(value: Any, field: str) -> str:
    """
    Validate a required text field.

    Returns:
        The stripped value

    Raises:
        ValidationError: If the value is missing, blank or not a string
    """
    if value is None:
        raise ValidationError(field, "Field is required")

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    stripped = value.strip()
    if not stripped:
        raise ValidationError(field, "Field is required")

    if len(stripped) > MAX_NAME_LENGTH:
        raise ValidationError(
            field,
            f"Cannot exceed {MAX_NAME_LENGTH} characters",
            len(stripped)
        )

    return stripped


def validate_slug(value: Any, field: str = "slug") -> str:
    """
    Validate a category slug.

    Slugs are lowercased and stripped before matching ``^[a-z0-9-]+$``.
    """
    slug = validate_required(value, field).lower()
    if not SLUG_PATTERN.match(slug):
        raise ValidationError(
            field,
            "Only lowercase letters, digits and hyphens are allowed",
            slug
        )
    return slug


def validate_stars(value: Any, field: str = "stars") -> int:
    """
    Validate a star count.

    None and empty string count as zero; numeric strings are accepted.
    """
    if value is None or value == "":
        return 0

    if isinstance(value, bool):
        raise ValidationError(field, "Must be an integer", value)

    if isinstance(value, str):
        if not value.strip().lstrip("-").isdigit():
            raise ValidationError(field, "Must be an integer", value)
        value = int(value.strip())

    if not isinstance(value, int):
        raise ValidationError(field, "Must be an integer", value)

    if value < 0:
        raise ValidationError(field, "Must be at least 0", value)

    return value


def validate_tags(value: Any, field: str = "tags") -> List[str]:
    """
    Validate tags.

    Accepts a list of strings or a comma separated string. Blank entries are
    dropped; order is preserved.
    """
    if value is None or value == "":
        return []

    if isinstance(value, str):
        value = value.split(",")

    if not isinstance(value, (list, tuple)):
        raise ValidationError(field, "Must be a list of strings", value)

    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValidationError(field, "Must be a list of strings", value)
        tag = tag.strip()
        if tag:
            tags.append(tag)
    return tags


def validate_theme(value: Any, field: str = "theme") -> str:
    """Validate a theme setting."""
    if value not in THEMES:
        raise ValidationError(field, f"Must be one of {list(THEMES)}", value)
    return value


def validate_sort(value: Any, field: str = "sort") -> Tuple[str, str]:
    """
    Validate a sort key of the form ``<field>-<direction>``.

    Returns:
        Tuple of (field, direction)
    """
    if not isinstance(value, str) or "-" not in value:
        raise ValidationError(field, "Expected '<field>-<direction>'", value)

    sort_field, _, direction = value.partition("-")
    if sort_field not in SORT_FIELDS:
        raise ValidationError(field, f"Field must be one of {sorted(SORT_FIELDS)}", value)
    if direction not in SORT_DIRECTIONS:
        raise ValidationError(field, f"Direction must be one of {sorted(SORT_DIRECTIONS)}", value)
    return sort_field, direction


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(key, "Must be a string", value)
    return value.strip()


def validate_project_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a new project payload.

    Returns:
        Normalized copy of the payload (unknown keys are kept; the model
        drops them)
    """
    if not isinstance(data, dict):
        raise ValidationError("project", "Must be a mapping", data)

    cleaned = dict(data)
    cleaned["name"] = validate_required(data.get("name"), "name")
    cleaned["owner"] = validate_required(data.get("owner"), "owner")
    cleaned["stars"] = validate_stars(data.get("stars"))
    cleaned["tags"] = validate_tags(data.get("tags"))

    for key in ("description", "github_url", "language", "category"):
        value = _optional_text(data, key)
        cleaned[key] = value or ""

    if not cleaned["github_url"]:
        cleaned["github_url"] = f"https://github.com/{cleaned['owner']}/{cleaned['name']}"

    return cleaned


def validate_project_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial project update. Only present keys are checked."""
    if not isinstance(updates, dict):
        raise ValidationError("updates", "Must be a mapping", updates)

    cleaned = dict(updates)
    for key in ("name", "owner"):
        if key in updates:
            cleaned[key] = validate_required(updates[key], key)
    if "stars" in updates:
        cleaned["stars"] = validate_stars(updates["stars"])
    if "tags" in updates:
        cleaned["tags"] = validate_tags(updates["tags"])
    for key in ("description", "github_url", "language", "category"):
        if key in updates:
            cleaned[key] = _optional_text(updates, key) or ""
    return cleaned


def validate_category_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a new category payload."""
    if not isinstance(data, dict):
        raise ValidationError("category", "Must be a mapping", data)

    cleaned = dict(data)
    cleaned["name"] = validate_required(data.get("name"), "name")
    cleaned["slug"] = validate_slug(data.get("slug"))
    cleaned["description"] = _optional_text(data, "description") or ""
    if data.get("id") in (None, ""):
        cleaned["id"] = cleaned["slug"]
    else:
        cleaned["id"] = validate_required(data["id"], "id")
    return cleaned


def validate_category_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial category update."""
    if not isinstance(updates, dict):
        raise ValidationError("updates", "Must be a mapping", updates)

    cleaned = dict(updates)
    if "name" in updates:
        cleaned["name"] = validate_required(updates["name"], "name")
    if "slug" in updates:
        cleaned["slug"] = validate_slug(updates["slug"])
    if "description" in updates:
        cleaned["description"] = _optional_text(updates, "description") or ""
    return cleaned


def generate_slug(text: str) -> str:
    """
    Build a URL friendly slug from free text.

    Drops special characters, turns whitespace into hyphens and collapses
    runs of hyphens.
    """
    slug = (text or "").lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")
