"""
同步协调器

把三个事件来源合并到 BookmarkStore：
- 本地操作成功后的乐观更新
- 同源标签页的广播（added / removed）
- 服务端推送（insert / delete）

所有来源都只调用 store.upsert_if_absent / store.remove_by_id，
不记录消息来自哪条通道，重复和乱序到达都由按 ID 的幂等合并吸收。
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from ..config import settings
from ..errors import BookmarkError, PushFeedError
from ..schemas import BookmarkRecord, BroadcastMessage, ChangeEvent, PUSH_EVENT_TYPES
from .broadcast import BroadcastBus, BroadcastChannel
from .push import PushFeed
from .store import BookmarkStore

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[List[BookmarkRecord]]]


class SyncReconciler:
    """
    管理广播频道和推送订阅的生命周期，并把事件合并进 store

    用法:
        async with SyncReconciler(store, owner_id, bus=bus, push_feed=feed) as reconciler:
            reconciler.local_added(record)

    退出上下文（包括异常退出）时两个订阅都会被释放。
    """

    def __init__(
        self,
        store: BookmarkStore,
        owner_id: str,
        *,
        bus: Optional[BroadcastBus] = None,
        push_feed: Optional[PushFeed] = None,
        snapshot_loader: Optional[SnapshotLoader] = None,
        channel_name: Optional[str] = None,
        reconnect_attempts: Optional[int] = None,
        reconnect_delay: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ):
        self.store = store
        self.owner_id = owner_id
        self.channel_name = channel_name or settings.BROADCAST_CHANNEL
        self._bus = bus
        self._push_feed = push_feed
        self._snapshot_loader = snapshot_loader
        self.reconnect_attempts = (
            settings.REALTIME_RECONNECT_ATTEMPTS if reconnect_attempts is None else reconnect_attempts
        )
        self.reconnect_delay = (
            settings.REALTIME_RECONNECT_DELAY if reconnect_delay is None else reconnect_delay
        )
        self.connect_timeout = (
            settings.REALTIME_CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        )

        self._stack: Optional[AsyncExitStack] = None
        self._channel: Optional[BroadcastChannel] = None
        self._push_task: Optional[asyncio.Task] = None
        self._push_connected = False

    # ==================== 生命周期 ====================

    @property
    def broadcast_available(self) -> bool:
        return self._channel is not None and not self._channel.closed

    @property
    def push_connected(self) -> bool:
        return self._push_connected

    async def start(self) -> None:
        """打开广播频道和推送订阅；任何一个不可用都只降级，不报错"""
        if self._stack is not None:
            raise RuntimeError("SyncReconciler already started")

        stack = AsyncExitStack()
        try:
            if self._bus is not None:
                try:
                    self._channel = stack.enter_context(self._bus.open(self.channel_name))
                    self._channel.on_message(self._on_broadcast)
                except Exception as e:
                    logger.warning(f"广播频道不可用，仅使用推送同步: {e}")
                    self._channel = None
            else:
                logger.info("未配置广播频道，跨标签页同步依赖推送")

            if self._push_feed is not None:
                ready = asyncio.Event()
                self._push_task = asyncio.create_task(self._run_push(ready))
                stack.push_async_callback(self._stop_push)
                # 等到首次订阅完成（或失败）再返回，避免启动后的事件丢失；
                # 建连卡住时不阻塞增删查，后台任务继续尝试
                try:
                    await asyncio.wait_for(ready.wait(), self.connect_timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        f"推送通道 {self.connect_timeout}s 内未连接，先以广播同步运行: owner={self.owner_id}"
                    )
            else:
                logger.info("未配置推送通道，仅使用广播同步")
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack

    async def close(self) -> None:
        """释放全部订阅，可重复调用"""
        stack, self._stack = self._stack, None
        if stack is not None:
            await stack.aclose()
        self._channel = None

    async def __aenter__(self) -> "SyncReconciler":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ==================== 合并 ====================

    def apply_added(self, record: BookmarkRecord) -> bool:
        """任一来源的新增"""
        return self.store.upsert_if_absent(record)

    def apply_removed(self, bookmark_id: Optional[str]) -> bool:
        """任一来源的删除；缺少 ID 的删除事件直接忽略"""
        if not bookmark_id:
            logger.debug("忽略缺少 ID 的删除事件")
            return False
        return self.store.remove_by_id(bookmark_id)

    def local_added(self, record: BookmarkRecord) -> bool:
        """本地创建成功：乐观更新并通知其他标签页"""
        inserted = self.apply_added(record)
        self._publish(BroadcastMessage.added(record))
        return inserted

    def local_removed(self, bookmark_id: str) -> bool:
        """本地删除成功：更新并通知其他标签页"""
        removed = self.apply_removed(bookmark_id)
        self._publish(BroadcastMessage.removed(bookmark_id))
        return removed

    def apply_push(self, event: ChangeEvent) -> bool:
        """处理推送事件"""
        if event.type == "insert":
            if event.record is None:
                logger.debug("忽略缺少记录的 insert 事件")
                return False
            return self.apply_added(event.record)
        return self.apply_removed(event.id or (event.record.id if event.record else None))

    def apply_broadcast(self, message: BroadcastMessage) -> bool:
        """处理广播消息"""
        if message.kind == "added":
            if message.record is None:
                return False
            return self.apply_added(message.record)
        return self.apply_removed(message.id)

    # ==================== 广播 ====================

    def _publish(self, message: BroadcastMessage) -> None:
        if not self.broadcast_available:
            return
        try:
            self._channel.post_message(message.to_wire())
        except (RuntimeError, TypeError) as e:
            logger.warning(f"广播发送失败: {e}")

    def _on_broadcast(self, data: Dict[str, Any]) -> None:
        try:
            message = BroadcastMessage.model_validate(data)
        except SchemaError:
            logger.warning(f"忽略无法解析的广播消息: {data!r}")
            return
        self.apply_broadcast(message)

    # ==================== 推送 ====================

    async def _run_push(self, ready: asyncio.Event) -> None:
        """
        消费推送通道

        断线后按配置重连：先重新订阅，再用新快照 initialize，
        以弥补断线期间错过的事件（推送通道不回放）。
        """
        attempt = 0
        try:
            while True:
                try:
                    async with self._push_feed.subscribe(self.owner_id, PUSH_EVENT_TYPES) as stream:
                        self._push_connected = True
                        ready.set()
                        if attempt > 0:
                            await self._resync()
                            attempt = 0
                        async for event in stream:
                            self.apply_push(event)
                    logger.warning(f"推送通道已结束: owner={self.owner_id}")
                except (PushFeedError, ConnectionError, OSError) as e:
                    logger.warning(f"推送通道不可用，降级为广播同步: {e}")
                finally:
                    self._push_connected = False
                    ready.set()

                attempt += 1
                if attempt > self.reconnect_attempts:
                    logger.warning(f"推送通道重连次数用尽: owner={self.owner_id}")
                    return
                await asyncio.sleep(self.reconnect_delay)
                logger.info(f"推送通道重连: owner={self.owner_id} attempt={attempt}")
        finally:
            ready.set()

    async def _resync(self) -> None:
        if self._snapshot_loader is None:
            return
        try:
            snapshot = await self._snapshot_loader()
            self.store.initialize(snapshot)
        except BookmarkError as e:
            logger.warning(f"重连后拉取快照失败，沿用本地状态: {e}")
            return
        except Exception:
            # 快照失败不能终止推送循环
            logger.exception(f"重连后同步快照异常，沿用本地状态: owner={self.owner_id}")
            return
        logger.info(f"重连后已重新同步: {len(self.store)} 条")

    async def _stop_push(self) -> None:
        task, self._push_task = self._push_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception(f"推送任务异常退出: owner={self.owner_id}")
