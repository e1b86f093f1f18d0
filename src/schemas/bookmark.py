"""Pydantic schemas for bookmark endpoints."""
import re
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.config import get_settings

# Tag format: lowercase alphanumeric with hyphens (e.g., 'machine-learning', 'web-dev')
TAG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

BookmarkSortField = Literal["position", "created_at", "title", "url"]


def validate_and_normalize_tag(tag: str) -> str:
    """
    Normalize and validate a single tag.

    Args:
        tag: The tag string to validate.

    Returns:
        The normalized tag (lowercase, trimmed).

    Raises:
        ValueError: If tag is empty or has invalid format.
    """
    normalized = tag.lower().strip()
    if not normalized:
        raise ValueError("Tag name cannot be empty")
    if not TAG_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid tag format: '{normalized}'. "
            "Use lowercase letters, numbers, and hyphens only (e.g., 'machine-learning').",
        )
    return normalized


def validate_and_normalize_tags(tags: list[str]) -> list[str]:
    """
    Normalize and validate a list of tags.

    Empty strings are dropped and duplicates removed (first occurrence wins).

    Raises:
        ValueError: If any tag has invalid format.
    """
    normalized: list[str] = []
    for tag in tags:
        trimmed = tag.lower().strip()
        if not trimmed:
            continue  # Skip empty tags silently
        name = validate_and_normalize_tag(trimmed)
        if name not in normalized:
            normalized.append(name)
    return normalized


def validate_tag_count(tags: list[str]) -> list[str]:
    """Validate that a bookmark doesn't carry more than the configured number of tags."""
    max_tags = get_settings().max_tags_per_bookmark
    if len(tags) > max_tags:
        raise ValueError(f"A bookmark can have at most {max_tags} tags (got {len(tags)}).")
    return tags


class BookmarkCreate(BaseModel):
    """
    Schema for creating a new bookmark.

    Only the URL and tags come from the client; title, favicon, summary and
    position are derived server-side.
    """

    url: str
    tags: list[str] = []

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str]:
        """Normalize, de-duplicate and validate tags."""
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("Tags must be a list of strings")
        return validate_tag_count(validate_and_normalize_tags(v))


class BookmarkResponse(BaseModel):
    """
    Schema for bookmark responses.

    Note: Uses model_validator to extract tag names from the tag_objects
    relationship when eagerly loaded.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    url: str
    title: str
    favicon_url: str | None
    summary: str
    tags: list[str]
    position: int
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def extract_tag_names(cls, data: Any) -> Any:
        """
        Extract tag names from tag_objects relationship.

        Only accesses tag_objects if it's already loaded (not lazy) to avoid
        triggering database queries outside async context.
        """
        if hasattr(data, "__dict__") and not isinstance(data, dict):
            data_dict = {
                key: getattr(data, key)
                for key in [
                    "id", "user_id", "url", "title", "favicon_url", "summary",
                    "position", "created_at", "updated_at",
                ]
            }
            loaded_tags = data.__dict__.get("tag_objects")
            data_dict["tags"] = sorted(tag.name for tag in loaded_tags or [])
            return data_dict
        return data


class ReorderRequest(BaseModel):
    """
    Schema for reordering bookmarks.

    `bookmarks` is the caller's bookmark list in the desired order. Each
    element may be a bare id or a bookmark object carrying an `id`.
    """

    bookmarks: list[UUID] = Field(
        description="Bookmark ids (or objects with an 'id') in the new display order.",
    )

    @field_validator("bookmarks", mode="before")
    @classmethod
    def extract_ids(cls, v: Any) -> Any:
        """Accept bookmark objects as well as bare ids."""
        if not isinstance(v, list):
            raise ValueError("Invalid bookmarks data: expected a list")
        return [item.get("id") if isinstance(item, dict) else item for item in v]


class SuccessResponse(BaseModel):
    """Generic acknowledgement body."""

    success: bool = True
