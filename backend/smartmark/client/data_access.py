"""
远端数据访问

书签的增删查全部经由服务端 REST 接口，范围隐式限定为当前用户。
客户端先做与服务端相同的校验，不合法的输入不会发出请求。
"""

import logging
from typing import Any, Callable, List, Protocol, Tuple, TypeVar

import httpx

from ..errors import NotFoundError, PersistenceError, SignInRequired, ValidationError
from ..schemas import BookmarkRecord, UserResponse
from ..utils.url import normalize_url, is_http_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

TITLE_REQUIRED = "Please enter a title"
INVALID_URL = "Please enter a valid URL"


class BookmarkDataAccess(Protocol):
    """数据访问接口"""

    async def list_mine(self) -> List[BookmarkRecord]:
        ...

    async def create(self, title: str, url: str) -> BookmarkRecord:
        ...

    async def delete_by_id(self, bookmark_id: str) -> None:
        ...


def validate_bookmark_input(title: str, url: str) -> Tuple[str, str]:
    """
    校验并规范化用户输入

    Returns:
        (去除空白的标题, 规范化后的地址)

    Raises:
        ValidationError: 标题为空或地址不是 http/https
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError(TITLE_REQUIRED)

    url = normalize_url(url)
    if not is_http_url(url):
        raise ValidationError(INVALID_URL)

    return title, url


def _validation_message(response: httpx.Response) -> str:
    """从 422/400 响应中取出可展示的错误信息"""
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return INVALID_URL
    if isinstance(detail, list) and detail:
        msg = str(detail[0].get("msg", ""))
        return msg.removeprefix("Value error, ") or INVALID_URL
    if isinstance(detail, str) and detail:
        return detail
    return INVALID_URL


class RemoteBookmarkAPI:
    """基于 httpx 的数据访问实现"""

    def __init__(self, client: httpx.AsyncClient, access_token: str):
        self._client = client
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{action} 请求失败: {e}")
            raise PersistenceError(f"{action} failed") from e

        if response.status_code == 401:
            raise SignInRequired("Session expired")
        return response

    @staticmethod
    def _decode(response: httpx.Response, action: str, parse: Callable[[Any], T]) -> T:
        """解析响应体；非 JSON 或字段不符（如代理返回的 HTML 页面）视为持久化失败"""
        try:
            return parse(response.json())
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"{action} 响应无法解析: {e}")
            raise PersistenceError(f"{action} failed: malformed response") from e

    async def get_current_user(self) -> UserResponse:
        """获取当前登录用户"""
        response = await self._request("GET", "/api/users/me", "get user")
        if response.status_code != 200:
            raise PersistenceError(f"get user failed: HTTP {response.status_code}")
        return self._decode(response, "get user", UserResponse.model_validate)

    async def list_mine(self) -> List[BookmarkRecord]:
        """获取当前用户的全部书签（最新的在前）"""
        response = await self._request("GET", "/api/bookmarks", "list bookmarks")
        if response.status_code != 200:
            raise PersistenceError(f"list bookmarks failed: HTTP {response.status_code}")
        return self._decode(
            response, "list bookmarks", lambda items: [BookmarkRecord.model_validate(item) for item in items]
        )

    async def create(self, title: str, url: str) -> BookmarkRecord:
        """创建书签，服务端分配 ID 和创建时间"""
        title, url = validate_bookmark_input(title, url)

        response = await self._request(
            "POST", "/api/bookmarks", "create bookmark", json={"title": title, "url": url}
        )
        if response.status_code in (400, 422):
            raise ValidationError(_validation_message(response))
        if response.status_code != 201:
            raise PersistenceError(f"create bookmark failed: HTTP {response.status_code}")
        return self._decode(response, "create bookmark", BookmarkRecord.model_validate)

    async def delete_by_id(self, bookmark_id: str) -> None:
        """删除书签；不存在（或不属于当前用户）时抛出 NotFoundError"""
        response = await self._request("DELETE", f"/api/bookmarks/{bookmark_id}", "delete bookmark")
        if response.status_code == 404:
            raise NotFoundError(bookmark_id)
        if response.status_code not in (200, 204):
            raise PersistenceError(f"delete bookmark failed: HTTP {response.status_code}")
