"""Service layer for bookmark ingestion, queries and deletion."""
import logging
from typing import Literal
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import get_settings
from models.bookmark import Bookmark
from models.tag import Tag, bookmark_tags
from models.user import User
from schemas.bookmark import BookmarkCreate, BookmarkSortField, validate_and_normalize_tags
from services.exceptions import StorageError, ValidationError
from services.summary_service import generate_summary
from services.tag_service import get_or_create_tags
from services.url_scraper import fetch_metadata

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    r"""
    Escape special LIKE characters for safe use in LIKE/ILIKE patterns.

    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def lock_user_for_insert(db: AsyncSession, user_id: UUID) -> None:
    """
    Take the per-user insertion lock.

    Locks the caller's users row with SELECT ... FOR UPDATE. The lock is held
    until the request transaction ends, so two ingestions for the same user
    cannot both read the same max position. Dialects without row locks
    (SQLite) serialize writers on their own and render no FOR UPDATE.
    """
    await db.execute(select(User.id).where(User.id == user_id).with_for_update())


async def get_next_position(db: AsyncSession, user_id: UUID) -> int:
    """
    Return the position for a bookmark appended to the user's list.

    This is a plain read: without `lock_user_for_insert` two concurrent callers
    get the same value.
    """
    result = await db.execute(
        select(func.max(Bookmark.position)).where(Bookmark.user_id == user_id),
    )
    max_position = result.scalar_one_or_none()
    return 0 if max_position is None else max_position + 1


async def create_bookmark(
    db: AsyncSession,
    user_id: UUID,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Ingest a URL as a new bookmark for a user.

    Flow:
    1. Validate the URL is non-empty
    2. Fetch the page for title and favicon (failures fall back to the URL)
    3. Generate a summary (reader service, page text, or placeholder)
    4. Take the per-user insertion lock and append at max position + 1
    5. Write the row and its tag links

    Network steps run before the lock is taken so a slow page never blocks
    other ingestions for the same user. Steps 2 and 3 never raise.

    Args:
        db: Database session.
        user_id: Owner of the new bookmark.
        data: URL and tags supplied by the caller.

    Returns:
        The stored bookmark with tags loaded.

    Raises:
        ValidationError: If the URL is empty.
        StorageError: If the database rejects the write.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    url = data.url.strip()
    if not url:
        raise ValidationError("URL is required")

    settings = get_settings()
    metadata = await fetch_metadata(url, timeout=settings.page_fetch_timeout)
    summary = await generate_summary(
        url,
        metadata.html,
        reader_base_url=settings.reader_base_url,
        timeout=settings.reader_timeout,
    )

    try:
        await lock_user_for_insert(db, user_id)
        position = await get_next_position(db, user_id)
        tag_objects = await get_or_create_tags(db, user_id, data.tags)

        bookmark = Bookmark(
            user_id=user_id,
            url=url,
            title=metadata.title,
            favicon_url=metadata.favicon_url,
            summary=summary,
            position=position,
        )
        bookmark.tag_objects = tag_objects
        db.add(bookmark)
        await db.flush()
        await db.refresh(bookmark)
        # Ensure tag_objects is loaded for the response
        await db.refresh(bookmark, attribute_names=["tag_objects"])
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to store bookmark for {url}: {e}") from e

    logger.info(
        "Created bookmark %s for user %s at position %d", bookmark.id, user_id, position,
    )
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> Bookmark | None:
    """Get a bookmark by ID, scoped to user. Returns None if not found or wrong user."""
    try:
        result = await db.execute(
            select(Bookmark)
            .options(selectinload(Bookmark.tag_objects))
            .where(
                Bookmark.id == bookmark_id,
                Bookmark.user_id == user_id,
            ),
        )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to load bookmark {bookmark_id}: {e}") from e
    return result.scalar_one_or_none()


async def search_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    query: str | None = None,
    tags: list[str] | None = None,
    sort_by: BookmarkSortField = "position",
    sort_order: Literal["asc", "desc"] = "asc",
) -> list[Bookmark]:
    """
    List a user's bookmarks with optional search, tag filter and sorting.

    Args:
        db: Database session.
        user_id: User ID to scope bookmarks.
        query: Case-insensitive substring match across title, url and summary.
        tags: Bookmarks must carry ALL of these tags (normalized to lowercase).
        sort_by: Field to sort by. Defaults to the user's chosen position.
        sort_order: Sort direction.

    Returns:
        Matching bookmarks with tags loaded.

    Raises:
        ValueError: If a tag filter has invalid format.
        StorageError: If the query fails.
    """
    stmt = (
        select(Bookmark)
        .options(selectinload(Bookmark.tag_objects))
        .where(Bookmark.user_id == user_id)
    )

    if query and query.strip():
        pattern = f"%{escape_like(query.strip())}%"
        stmt = stmt.where(
            or_(
                Bookmark.title.ilike(pattern, escape="\\"),
                Bookmark.url.ilike(pattern, escape="\\"),
                Bookmark.summary.ilike(pattern, escape="\\"),
            ),
        )

    for tag_name in validate_and_normalize_tags(tags or []):
        # EXISTS subquery: bookmark has this tag via junction table
        stmt = stmt.where(
            exists(
                select(bookmark_tags.c.bookmark_id)
                .join(Tag, bookmark_tags.c.tag_id == Tag.id)
                .where(
                    bookmark_tags.c.bookmark_id == Bookmark.id,
                    Tag.name == tag_name,
                    Tag.user_id == user_id,
                ),
            ),
        )

    sort_column = getattr(Bookmark, sort_by)
    primary = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    stmt = stmt.order_by(primary, Bookmark.created_at.asc(), Bookmark.id.asc())

    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to list bookmarks: {e}") from e
    return list(result.scalars().all())


async def delete_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found or owned by another user.

    Remaining positions are left as they are; the next reorder compacts them.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    try:
        await db.delete(bookmark)
        await db.flush()
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to delete bookmark {bookmark_id}: {e}") from e

    logger.info("Deleted bookmark %s for user %s", bookmark_id, user_id)
    return True
