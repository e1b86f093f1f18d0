"""Tag listing endpoint."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.tag import TagListResponse
from services.tag_service import get_user_tags_with_counts

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("/", response_model=TagListResponse)
async def list_tags(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> TagListResponse:
    """
    Get all tags for the current user with the number of bookmarks using each.

    Results are sorted by count DESC, then name ASC.
    """
    tags = await get_user_tags_with_counts(db, current_user.id)
    return TagListResponse(tags=tags)
