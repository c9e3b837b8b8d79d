"""认证路由（OAuth 登录）"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ...config import settings
from ...database import get_db
from ...models import User
from ...schemas import Token, RefreshTokenRequest, AuthorizationResponse, OAuthProfile
from ...utils import oauth
from ...utils.cache import issue_state, consume_state
from ...utils.security import create_access_token, create_refresh_token, decode_token

logger = logging.getLogger(__name__)

router = APIRouter()


async def upsert_oauth_user(db: AsyncSession, profile: OAuthProfile) -> User:
    """按 (provider, subject) 查找或创建用户，并同步资料"""
    result = await db.execute(
        select(User).where(
            User.provider == settings.OAUTH_PROVIDER,
            User.provider_subject == profile.subject,
        )
    )
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            provider=settings.OAUTH_PROVIDER,
            provider_subject=profile.subject,
        )
        db.add(user)
        logger.info(f"新用户登录: provider={settings.OAUTH_PROVIDER} subject={profile.subject}")

    user.email = profile.email
    user.full_name = profile.full_name
    user.avatar_url = profile.avatar_url

    await db.flush()
    await db.refresh(user)
    return user


@router.get("/oauth/authorize", response_model=AuthorizationResponse)
async def authorize():
    """获取 OAuth 授权地址"""
    state = issue_state(settings.OAUTH_PROVIDER)
    try:
        url = oauth.build_authorization_url(state)
    except oauth.OAuthError as e:
        consume_state(state)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return AuthorizationResponse(authorization_url=url, state=state)


@router.get("/oauth/callback", response_model=Token)
async def oauth_callback(code: str, state: str, db: AsyncSession = Depends(get_db)):
    """OAuth 回调：校验 state，换取用户信息并签发令牌"""
    if not consume_state(state):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired state"
        )

    try:
        profile = await oauth.exchange_code(code)
    except oauth.OAuthError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    user = await upsert_oauth_user(db, profile)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is disabled"
        )

    return Token(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id)
    )


@router.post("/refresh", response_model=Token)
async def refresh_token(request: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    """刷新令牌"""
    payload = decode_token(request.refresh_token)

    if payload is None or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    # 验证用户
    user_id = payload.get("sub")
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or disabled"
        )

    # 生成新令牌
    return Token(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id)
    )
