"""
服务端推送通道

两种实现，接口相同：subscribe(owner_id, event_types) 是异步上下文管理器，
产出 ChangeEvent 的异步迭代器；退出时一定释放连接。

- HubPushFeed: 进程内直接订阅 ChangeHub
- WebSocketPushFeed: 通过 aiohttp 连接 /api/realtime

传输层错误统一转换为 PushFeedError。
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Iterable, Optional, Protocol
from urllib.parse import urlencode

import aiohttp
from pydantic import ValidationError as SchemaError

from ..config import settings
from ..errors import PushFeedError
from ..realtime import ChangeHub
from ..schemas import ChangeEvent, PUSH_EVENT_TYPES

logger = logging.getLogger(__name__)


class PushFeed(Protocol):
    """推送通道接口"""

    def subscribe(
        self, owner_id: str, event_types: Iterable[str] = PUSH_EVENT_TYPES
    ) -> AsyncContextManager[AsyncIterator[ChangeEvent]]:
        ...


def parse_change_event(data: Dict[str, Any]) -> Optional[ChangeEvent]:
    """解析推送消息，格式不对时返回 None"""
    try:
        return ChangeEvent.model_validate(data)
    except SchemaError as e:
        logger.warning(f"忽略无法解析的推送消息: {e.errors()[:1]}")
        return None


class HubPushFeed:
    """进程内推送通道"""

    def __init__(self, hub: ChangeHub):
        self._hub = hub

    @asynccontextmanager
    async def subscribe(self, owner_id: str, event_types: Iterable[str] = PUSH_EVENT_TYPES):
        if self._hub.closed:
            raise PushFeedError("change hub is closed")
        async with self._hub.subscribe(owner_id, event_types) as subscription:
            yield subscription


class WebSocketPushFeed:
    """基于 WebSocket 的推送通道"""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30.0,
        connect_timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._session = session
        self.heartbeat = heartbeat
        self.connect_timeout = (
            settings.REALTIME_CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        )

    def feed_url(self, event_types: Iterable[str]) -> str:
        """构建订阅地址（http -> ws）"""
        query = urlencode({
            "token": self._access_token,
            "events": ",".join(sorted(event_types)),
        })
        base = self.base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/api/realtime?{query}"

    @asynccontextmanager
    async def subscribe(self, owner_id: str, event_types: Iterable[str] = PUSH_EVENT_TYPES):
        # 服务端根据令牌确定所有者，owner_id 仅用于日志
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout)
        )
        try:
            try:
                # 握手卡住也算一次失败，计入重连次数
                ws = await asyncio.wait_for(
                    session.ws_connect(self.feed_url(event_types), heartbeat=self.heartbeat),
                    self.connect_timeout,
                )
            except asyncio.TimeoutError as e:
                raise PushFeedError(f"push feed connect timed out after {self.connect_timeout}s") from e
            except (aiohttp.ClientError, OSError) as e:
                raise PushFeedError(f"push feed connect failed: {e}") from e

            logger.info(f"推送通道已连接: owner={owner_id}")
            try:
                yield self._iterate(ws)
            finally:
                await ws.close()
        finally:
            if owns_session:
                await session.close()

    async def _iterate(self, ws: aiohttp.ClientWebSocketResponse) -> AsyncIterator[ChangeEvent]:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning("忽略非 JSON 推送消息")
                    continue
                event = parse_change_event(data)
                if event is not None:
                    yield event
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise PushFeedError(f"push feed error: {ws.exception()}")
        # 连接被关闭
        raise PushFeedError(f"push feed closed (code={ws.close_code})")
