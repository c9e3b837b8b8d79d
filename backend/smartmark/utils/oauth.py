"""
OAuth 2.0 授权码登录

负责与第三方提供商交互：
- 生成授权地址
- 用授权码换取访问令牌
- 获取用户信息
"""

import logging
from urllib.parse import urlencode
from typing import Dict, Any
import httpx

from ..config import settings
from ..schemas import OAuthProfile

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """OAuth 交互失败"""
    pass


def build_authorization_url(state: str) -> str:
    """构建提供商授权地址"""
    if not settings.OAUTH_CLIENT_ID:
        raise OAuthError("OAuth client is not configured")

    params = {
        "client_id": settings.OAUTH_CLIENT_ID,
        "redirect_uri": settings.OAUTH_REDIRECT_URI,
        "response_type": "code",
        "scope": settings.OAUTH_SCOPE,
        "state": state,
        "access_type": "offline",
        "prompt": "select_account",
    }
    return f"{settings.OAUTH_AUTHORIZE_URL}?{urlencode(params)}"


def parse_profile(data: Dict[str, Any]) -> OAuthProfile:
    """
    将提供商返回的 userinfo 转换为统一格式

    兼容 OpenID Connect (sub/name/picture) 和 GitHub 风格 (id/login/avatar_url) 字段
    """
    subject = data.get("sub") or data.get("id")
    if not subject:
        raise OAuthError("Userinfo response has no subject")

    return OAuthProfile(
        subject=str(subject),
        email=data.get("email"),
        full_name=data.get("name") or data.get("full_name") or data.get("login"),
        avatar_url=data.get("picture") or data.get("avatar_url"),
    )


async def exchange_code(code: str) -> OAuthProfile:
    """
    用授权码换取用户信息

    Args:
        code: 回调中的授权码

    Returns:
        OAuthProfile

    Raises:
        OAuthError: 提供商返回错误或网络失败
    """
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.OAUTH_REDIRECT_URI,
        "client_id": settings.OAUTH_CLIENT_ID or "",
        "client_secret": settings.OAUTH_CLIENT_SECRET or "",
    }

    try:
        async with httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT) as client:
            token_resp = await client.post(
                settings.OAUTH_TOKEN_URL,
                data=form,
                headers={"Accept": "application/json"},
            )
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise OAuthError("Token response has no access_token")

            info_resp = await client.get(
                settings.OAUTH_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
            info_resp.raise_for_status()
            return parse_profile(info_resp.json())
    except httpx.HTTPError as e:
        logger.warning(f"OAuth 授权码交换失败: {e}")
        raise OAuthError("OAuth provider request failed") from e
