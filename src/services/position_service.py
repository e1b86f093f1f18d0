"""Service layer for the per-user display ordering of bookmarks."""
import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from services.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)


def compute_positions(
    ordered_ids: Sequence[UUID],
    owned_ids: Sequence[UUID],
) -> dict[UUID, int]:
    """
    Map each owned bookmark id to its new 0-based position.

    Submitted ids the user owns come first, in submitted order. Owned ids the
    caller left out follow in their previous order. Ids the user doesn't own
    are ignored.

    Args:
        ordered_ids: The caller's ids in the desired order, without duplicates.
        owned_ids: The user's bookmark ids in their current display order.

    Returns:
        Mapping of id to position covering exactly `owned_ids`, with values
        forming the sequence 0..len(owned_ids)-1.
    """
    owned = set(owned_ids)
    submitted = [bookmark_id for bookmark_id in ordered_ids if bookmark_id in owned]
    seen = set(submitted)
    remaining = [bookmark_id for bookmark_id in owned_ids if bookmark_id not in seen]
    return {bookmark_id: index for index, bookmark_id in enumerate(submitted + remaining)}


def _coerce_ids(ordered_ids: object) -> list[UUID]:
    if not isinstance(ordered_ids, list | tuple):
        raise ValidationError("Invalid bookmarks data: expected a list")

    ids: list[UUID] = []
    for item in ordered_ids:
        if isinstance(item, UUID):
            ids.append(item)
            continue
        try:
            ids.append(UUID(str(item)))
        except ValueError as e:
            raise ValidationError(f"Invalid bookmark id: {item!r}") from e

    if len(set(ids)) != len(ids):
        raise ValidationError("Duplicate bookmark ids in reorder request")
    return ids


async def reorder_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    ordered_ids: Sequence[UUID],
) -> None:
    """
    Rewrite a user's bookmark positions to follow the submitted order.

    All positions are written by a single UPDATE ... SET position = CASE id ...
    statement filtered by user_id, so the reorder is applied entirely or not
    at all within the request transaction.

    Args:
        db: Database session.
        user_id: Owner whose bookmarks are reordered.
        ordered_ids: Bookmark ids in the desired order.

    Raises:
        ValidationError: If ordered_ids isn't a list of ids or repeats an id.
        StorageError: If the store rejects the update.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    ids = _coerce_ids(ordered_ids)

    try:
        result = await db.execute(
            select(Bookmark.id)
            .where(Bookmark.user_id == user_id)
            .order_by(Bookmark.position, Bookmark.created_at, Bookmark.id),
        )
        owned_ids = list(result.scalars().all())
        if not owned_ids:
            return

        positions = compute_positions(ids, owned_ids)
        whens = [
            (Bookmark.id == bookmark_id, position)
            for bookmark_id, position in positions.items()
        ]
        await db.execute(
            update(Bookmark)
            .where(
                Bookmark.user_id == user_id,
                Bookmark.id.in_(list(positions)),
            )
            .values(
                position=case(*whens, else_=Bookmark.position),
            )
            .execution_options(synchronize_session="fetch"),
        )
        await db.flush()
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to reorder bookmarks for user {user_id}: {e}") from e

    logger.info(
        "Reordered %d bookmarks for user %s (%d submitted)",
        len(positions), user_id, len(ids),
    )
