"""书签路由"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from typing import List

from ...database import get_db
from ...models import User, Bookmark
from ...realtime import ChangeHub
from ...schemas import BookmarkCreate, BookmarkRecord, ChangeEvent
from ...api.deps import get_current_user, get_change_hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[BookmarkRecord])
async def get_bookmarks(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取当前用户的书签列表（最新的在前）"""
    query = (
        select(Bookmark)
        .where(Bookmark.user_id == current_user.id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
    )
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=BookmarkRecord, status_code=status.HTTP_201_CREATED)
async def create_bookmark(
    bookmark_in: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    hub: ChangeHub = Depends(get_change_hub),
):
    """创建书签，提交后推送 insert 事件"""
    bookmark = Bookmark(
        user_id=current_user.id,
        title=bookmark_in.title,
        url=bookmark_in.url,
    )
    db.add(bookmark)
    await db.flush()
    await db.refresh(bookmark)
    record = BookmarkRecord.model_validate(bookmark)

    # 提交成功后才通知其他客户端
    await db.commit()
    hub.publish(current_user.id, ChangeEvent.inserted(record))
    logger.info(f"创建书签: user={current_user.id} id={record.id}")
    return record


@router.delete("/{bookmark_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bookmark(
    bookmark_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    hub: ChangeHub = Depends(get_change_hub),
):
    """删除书签，提交后推送 delete 事件"""
    # 条件中包含所有者：删除他人的书签与删除不存在的书签结果相同
    result = await db.execute(
        delete(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == current_user.id
        )
    )

    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Bookmark not found")

    await db.commit()
    hub.publish(current_user.id, ChangeEvent.deleted(bookmark_id))
    logger.info(f"删除书签: user={current_user.id} id={bookmark_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
