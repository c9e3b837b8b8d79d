"""
书签面板会话

一个标签页中登录后的顶层作用域：持有数据访问客户端、推送通道、
广播频道和同步协调器，会话结束时统一释放。

所有用户操作的失败都在这里转换为可关闭的提示，不会抛到渲染层。
"""

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional

import httpx

from ..config import settings
from ..errors import NotFoundError, PersistenceError, SignInRequired, ValidationError
from ..schemas import UserResponse
from .broadcast import BroadcastBus
from .data_access import BookmarkDataAccess, RemoteBookmarkAPI
from .push import PushFeed, WebSocketPushFeed
from .reconciler import SyncReconciler
from .store import BookmarkStore, FilteredView

logger = logging.getLogger(__name__)

MSG_ADDED = "Bookmark added!"
MSG_ADD_FAILED = "Failed to add bookmark"
MSG_DELETED = "Bookmark deleted"
MSG_DELETE_FAILED = "Failed to delete bookmark"


@dataclass
class Notification:
    """操作结果提示（toast）"""
    message: str
    type: Literal["success", "error"]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_error(self) -> bool:
        return self.type == "error"


class DashboardSession:
    """
    书签面板会话

    用法:
        async with DashboardSession(api, user, bus=bus, push_feed=feed) as session:
            await session.add_bookmark("Docs", "docs.python.org")
            for record in session.search("python"):
                ...
    """

    def __init__(
        self,
        data: BookmarkDataAccess,
        user: Optional[UserResponse],
        *,
        bus: Optional[BroadcastBus] = None,
        push_feed: Optional[PushFeed] = None,
        channel_name: Optional[str] = None,
        reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.data = data
        self.user = user
        self.store = BookmarkStore(owner_id=user.id if user else None)
        self.notifications: List[Notification] = []
        self.redirect_to: Optional[str] = None
        self.reconciler: Optional[SyncReconciler] = None
        if user is not None:
            self.reconciler = SyncReconciler(
                self.store,
                user.id,
                bus=bus,
                push_feed=push_feed,
                snapshot_loader=data.list_mine,
                channel_name=channel_name,
                reconnect_attempts=reconnect_attempts,
                reconnect_delay=reconnect_delay,
                connect_timeout=connect_timeout,
            )
        self._stack = AsyncExitStack()
        self._open = False

    # ==================== 生命周期 ====================

    @classmethod
    async def connect(
        cls,
        base_url: str,
        access_token: Optional[str],
        *,
        bus: Optional[BroadcastBus] = None,
        **kwargs,
    ) -> "DashboardSession":
        """
        连接远端服务并打开会话

        创建的 httpx 客户端和 WebSocket 推送通道归本会话所有，close() 时释放。
        未登录时返回的会话 redirect_to 指向登录页。
        """
        client = httpx.AsyncClient(base_url=base_url, timeout=10.0)
        api = RemoteBookmarkAPI(client, access_token or "")
        user = None
        if access_token:
            try:
                user = await api.get_current_user()
            except SignInRequired:
                user = None
            except BaseException:
                await client.aclose()
                raise

        feed = None
        if user:
            feed = WebSocketPushFeed(base_url, access_token, connect_timeout=kwargs.get("connect_timeout"))
        session = cls(api, user, bus=bus, push_feed=feed, **kwargs)
        session._stack.push_async_callback(client.aclose)
        try:
            await session.open()
        except BaseException:
            await session.close()
            raise
        return session

    async def open(self) -> None:
        """拉取快照并开始同步；没有登录用户时只设置跳转"""
        if self.user is None:
            self.redirect_to = settings.SIGN_IN_PATH
            return

        try:
            snapshot = await self.data.list_mine()
        except SignInRequired:
            self.redirect_to = settings.SIGN_IN_PATH
            return
        except PersistenceError as e:
            logger.warning(f"加载书签失败: {e}")
            snapshot = []
            self.notify("Failed to load bookmarks", "error")

        self.store.initialize(snapshot)
        await self.reconciler.start()
        self._stack.push_async_callback(self.reconciler.close)
        self._open = True

    async def close(self) -> None:
        """结束会话：释放订阅和客户端，之后的状态修改都是空操作"""
        self._open = False
        try:
            await self._stack.aclose()
        finally:
            self.store.close()

    async def sign_out(self) -> None:
        """登出并跳转到登录页"""
        await self.close()
        self.redirect_to = settings.SIGN_IN_PATH

    async def __aenter__(self) -> "DashboardSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    # ==================== 提示 ====================

    def notify(self, message: str, type: Literal["success", "error"]) -> Notification:
        notification = Notification(message=message, type=type)
        self.notifications.append(notification)
        return notification

    def dismiss(self, notification: Notification) -> None:
        if notification in self.notifications:
            self.notifications.remove(notification)

    # ==================== 用户操作 ====================

    async def add_bookmark(self, title: str, url: str) -> Optional[Notification]:
        """添加书签，返回结果提示"""
        if self.user is None:
            self.redirect_to = settings.SIGN_IN_PATH
            return None

        try:
            record = await self.data.create(title, url)
        except ValidationError as e:
            return self.notify(e.message, "error")
        except SignInRequired:
            self.redirect_to = settings.SIGN_IN_PATH
            return None
        except PersistenceError as e:
            logger.warning(f"添加书签失败: {e}")
            return self.notify(MSG_ADD_FAILED, "error")
        except Exception:
            logger.exception("添加书签出现未知错误")
            return self.notify(MSG_ADD_FAILED, "error")

        # 会话已关闭时 store 的修改是空操作
        self.reconciler.local_added(record)
        return self.notify(MSG_ADDED, "success")

    async def delete_bookmark(self, bookmark_id: str) -> Optional[Notification]:
        """删除书签，返回结果提示"""
        if self.user is None:
            self.redirect_to = settings.SIGN_IN_PATH
            return None

        try:
            await self.data.delete_by_id(bookmark_id)
        except NotFoundError:
            # 记录已经不存在，目标状态已达成
            logger.info(f"删除的书签已不存在: {bookmark_id}")
        except SignInRequired:
            self.redirect_to = settings.SIGN_IN_PATH
            return None
        except PersistenceError as e:
            logger.warning(f"删除书签失败: {e}")
            return self.notify(MSG_DELETE_FAILED, "error")
        except Exception:
            logger.exception("删除书签出现未知错误")
            return self.notify(MSG_DELETE_FAILED, "error")

        self.reconciler.local_removed(bookmark_id)
        return self.notify(MSG_DELETED, "success")

    def search(self, query: str = "") -> FilteredView:
        """按标题或地址搜索，永不失败"""
        return self.store.filtered_view(query)

    @staticmethod
    def count_label(count: int) -> str:
        return f"{count} bookmark" if count == 1 else f"{count} bookmarks"
