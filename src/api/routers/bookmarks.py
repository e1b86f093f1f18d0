"""Bookmark endpoints."""
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkResponse,
    BookmarkSortField,
    ReorderRequest,
    SuccessResponse,
)
from services import bookmark_service, position_service
from services.exceptions import ValidationError

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


@router.get("/", response_model=list[BookmarkResponse])
async def list_bookmarks(
    q: str | None = Query(default=None, description="Search query (matches title, url, summary)"),
    tags: list[str] = Query(default=[], description="Filter by tags (bookmark must have all)"),
    sort_by: BookmarkSortField = Query(default="position", description="Sort field"),
    sort_order: Literal["asc", "desc"] = Query(default="asc", description="Sort order"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> list[BookmarkResponse]:
    """
    List bookmarks for the current user.

    - **q**: Case-insensitive text search across title, url and summary
    - **tags**: Filter by one or more tags (normalized to lowercase)
    - **sort_by**: position (default, the user's drag order), created_at, title or url
    - **sort_order**: asc (default) or desc
    """
    try:
        bookmarks = await bookmark_service.search_bookmarks(
            db=db,
            user_id=current_user.id,
            query=q,
            tags=tags or None,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValueError as e:
        # Tag validation errors from validate_and_normalize_tags
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return [BookmarkResponse.model_validate(b) for b in bookmarks]


@router.post("/", response_model=BookmarkResponse, status_code=status.HTTP_201_CREATED)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """
    Save a URL as a bookmark.

    Title, favicon and summary are derived from the page. An unreachable page
    still produces a bookmark titled with its URL and a placeholder summary.
    The new bookmark is appended at the end of the user's ordering.
    """
    try:
        bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return BookmarkResponse.model_validate(bookmark)


@router.put("/reorder", response_model=SuccessResponse)
async def reorder_bookmarks(
    data: ReorderRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    """
    Persist a new display order.

    `bookmarks` lists the caller's bookmarks (ids or objects with an `id`) in
    the desired order. Ids that aren't the caller's are ignored.
    """
    try:
        await position_service.reorder_bookmarks(db, current_user.id, data.bookmarks)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return SuccessResponse()


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await bookmark_service.get_bookmark(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", response_model=SuccessResponse)
async def delete_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    """
    Delete a bookmark.

    Deleting a bookmark that doesn't exist or belongs to someone else is a no-op.
    """
    await bookmark_service.delete_bookmark(db, current_user.id, bookmark_id)
    return SuccessResponse()
