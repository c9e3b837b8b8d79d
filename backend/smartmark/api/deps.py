"""API 依赖"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from ..database import get_db
from ..models import User
from ..realtime import ChangeHub
from ..utils.security import user_id_from_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def load_active_user(db: AsyncSession, token: Optional[str]) -> User:
    """根据访问令牌加载用户，失败时抛出 HTTPException"""
    user_id = user_id_from_access_token(token)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is disabled",
        )
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """获取当前登录用户"""
    token = credentials.credentials if credentials else None
    return await load_active_user(db, token)


def get_change_hub(request: Request) -> ChangeHub:
    """获取应用级变更通知中心"""
    return request.app.state.change_hub
