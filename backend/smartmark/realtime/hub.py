"""
变更通知中心

进程内的发布/订阅，按书签所有者分发 insert/delete 事件，
供 WebSocket 推送通道和进程内客户端使用。

投递语义与推送通道一致：尽力而为、无回放。写入方永不阻塞，
订阅队列已满时丢弃事件并记录警告。
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Set

from ..config import settings
from ..schemas import ChangeEvent, PUSH_EVENT_TYPES

logger = logging.getLogger(__name__)

# 队列中的结束标记
_CLOSED = object()


class Subscription:
    """单个订阅：一个有界队列 + 关注的事件类型"""

    def __init__(self, owner_id: str, event_types: Iterable[str], maxsize: int):
        self.owner_id = owner_id
        self.event_types = frozenset(event_types)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: ChangeEvent) -> bool:
        """非阻塞投递，返回是否入队"""
        if self._closed or event.type not in self.event_types:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"订阅队列已满，丢弃事件: owner={self.owner_id} type={event.type}")
            return False
        return True

    def close(self) -> None:
        """结束订阅，迭代方会在取完已入队事件后停止"""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # 队列满时腾出一个位置放结束标记
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[ChangeEvent]:
        """取下一个事件，订阅结束时返回 None"""
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class ChangeHub:
    """按所有者分发变更事件"""

    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._subscriptions: Dict[str, Set[Subscription]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriber_count(self, owner_id: Optional[str] = None) -> int:
        """当前订阅数量"""
        if owner_id is not None:
            return len(self._subscriptions.get(owner_id, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    @asynccontextmanager
    async def subscribe(
        self,
        owner_id: str,
        event_types: Iterable[str] = PUSH_EVENT_TYPES,
    ) -> AsyncIterator[Subscription]:
        """
        订阅某个用户的变更

        进入上下文时即完成注册，退出时（包括异常）一定注销。
        """
        if self._closed:
            raise RuntimeError("ChangeHub is closed")

        subscription = Subscription(owner_id, event_types, self._queue_size)
        self._subscriptions.setdefault(owner_id, set()).add(subscription)
        logger.debug(f"新增订阅: owner={owner_id} types={sorted(subscription.event_types)}")
        try:
            yield subscription
        finally:
            subscription.close()
            subs = self._subscriptions.get(owner_id)
            if subs is not None:
                subs.discard(subscription)
                if not subs:
                    del self._subscriptions[owner_id]
            logger.debug(f"移除订阅: owner={owner_id}")

    def publish(self, owner_id: str, event: ChangeEvent) -> int:
        """发布事件给该用户的所有订阅，返回实际投递数"""
        delivered = 0
        for subscription in list(self._subscriptions.get(owner_id, ())):
            if subscription.offer(event):
                delivered += 1
        logger.debug(f"发布事件: owner={owner_id} type={event.type} delivered={delivered}")
        return delivered

    def close(self) -> None:
        """关闭所有订阅（应用关闭时调用）"""
        self._closed = True
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()
