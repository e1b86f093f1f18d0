"""Pydantic schemas for tag endpoints."""
from pydantic import BaseModel


class TagCount(BaseModel):
    """Tag name with the number of the user's bookmarks carrying it."""

    name: str
    count: int


class TagListResponse(BaseModel):
    """Response for listing a user's tags."""

    tags: list[TagCount]
