"""
同源跨标签页广播

模拟浏览器 BroadcastChannel 的语义：
- 同一个 bus（同源、同浏览器）中同名的频道互相收发
- 发送方自己不会收到消息
- 消息以 JSON 序列化后传递，接收方拿到的是独立副本
- 异步投递（在事件循环的下一轮），尽力而为
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]


class BroadcastChannel:
    """广播频道的一个端点"""

    def __init__(self, bus: "BroadcastBus", name: str):
        self._bus = bus
        self.name = name
        self._handler: Optional[MessageHandler] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_message(self, handler: Optional[MessageHandler]) -> None:
        """设置消息回调"""
        self._handler = handler

    def post_message(self, message: Dict[str, Any]) -> int:
        """
        向同名的其他端点广播

        Returns:
            预定投递的端点数量

        Raises:
            RuntimeError: 频道已关闭
            TypeError: 消息无法序列化为 JSON
        """
        if self._closed:
            raise RuntimeError(f"BroadcastChannel {self.name!r} is closed")
        payload = json.dumps(message)
        return self._bus._dispatch(self, payload)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._handler = None
        self._bus._detach(self)

    def __enter__(self) -> "BroadcastChannel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _deliver(self, payload: str) -> None:
        # 投递时频道可能已关闭
        if self._closed or self._handler is None:
            return
        try:
            self._handler(json.loads(payload))
        except Exception:
            logger.exception(f"广播消息处理失败: channel={self.name}")


class BroadcastBus:
    """同源的广播总线（一个浏览器内的所有标签页共享一个）"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._channels: Dict[str, Set[BroadcastChannel]] = {}

    def open(self, name: str) -> BroadcastChannel:
        """打开一个频道端点"""
        channel = BroadcastChannel(self, name)
        self._channels.setdefault(name, set()).add(channel)
        return channel

    def channel_count(self, name: str) -> int:
        return len(self._channels.get(name, ()))

    def _detach(self, channel: BroadcastChannel) -> None:
        channels = self._channels.get(channel.name)
        if channels is None:
            return
        channels.discard(channel)
        if not channels:
            del self._channels[channel.name]

    def _dispatch(self, sender: BroadcastChannel, payload: str) -> int:
        loop = self._loop or asyncio.get_running_loop()
        targets = [c for c in self._channels.get(sender.name, ()) if c is not sender]
        for target in targets:
            loop.call_soon(target._deliver, payload)
        return len(targets)
