"""Service layer for tag operations."""
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.tag import Tag, bookmark_tags
from schemas.bookmark import validate_and_normalize_tags
from schemas.tag import TagCount
from services.exceptions import StorageError


async def get_or_create_tags(
    db: AsyncSession,
    user_id: UUID,
    tag_names: list[str],
) -> list[Tag]:
    """
    Get existing tags or create new ones.

    Args:
        db: Database session.
        user_id: User ID to scope tags.
        tag_names: List of tag names to get or create.

    Returns:
        List of Tag objects (existing or newly created), in input order.
    """
    if not tag_names:
        return []

    normalized = validate_and_normalize_tags(tag_names)
    if not normalized:
        return []

    result = await db.execute(
        select(Tag).where(
            Tag.user_id == user_id,
            Tag.name.in_(normalized),
        ),
    )
    existing_tags = {tag.name: tag for tag in result.scalars()}

    tags = []
    for name in normalized:
        if name in existing_tags:
            tags.append(existing_tags[name])
        else:
            new_tag = Tag(user_id=user_id, name=name)
            db.add(new_tag)
            tags.append(new_tag)

    await db.flush()
    return tags


async def get_user_tags_with_counts(
    db: AsyncSession,
    user_id: UUID,
) -> list[TagCount]:
    """
    Get all tags for a user with the number of bookmarks using each.

    Tags whose bookmarks were all deleted are still listed with a zero count.

    Returns:
        List of TagCount objects sorted by count desc, then name asc.

    Raises:
        StorageError: If the query fails.
    """
    count = func.count(bookmark_tags.c.bookmark_id).label("count")
    try:
        result = await db.execute(
            select(Tag.name, count)
            .outerjoin(bookmark_tags, Tag.id == bookmark_tags.c.tag_id)
            .where(Tag.user_id == user_id)
            .group_by(Tag.id, Tag.name)
            .order_by(count.desc(), Tag.name.asc()),
        )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to list tags for user {user_id}: {e}") from e
    return [TagCount(name=row.name, count=row.count) for row in result]
