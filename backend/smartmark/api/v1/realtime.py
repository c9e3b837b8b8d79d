"""实时推送路由（WebSocket）"""
import asyncio
import logging
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from typing import Optional

from ...database import AsyncSessionLocal
from ...schemas import PUSH_EVENT_TYPES
from ...api.deps import load_active_user

logger = logging.getLogger(__name__)

router = APIRouter()

# 鉴权失败时的关闭码
WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403


def parse_event_types(events: Optional[str]) -> frozenset:
    """解析 events 参数，忽略未知类型，为空时订阅全部"""
    if not events:
        return PUSH_EVENT_TYPES
    requested = {e.strip().lower() for e in events.split(",") if e.strip()}
    return frozenset(requested & PUSH_EVENT_TYPES) or PUSH_EVENT_TYPES


@router.websocket("")
async def realtime_feed(websocket: WebSocket, token: Optional[str] = None, events: Optional[str] = None):
    """
    推送当前用户的书签变更

    - token: 访问令牌（浏览器 WebSocket 无法自定义请求头）
    - events: 逗号分隔的事件类型，默认 insert,delete
    - 断线后不回放，客户端需重新拉取快照
    """
    async with AsyncSessionLocal() as db:
        try:
            user = await load_active_user(db, token)
        except HTTPException as e:
            code = WS_CLOSE_FORBIDDEN if e.status_code == status.HTTP_403_FORBIDDEN else WS_CLOSE_UNAUTHORIZED
            await websocket.close(code=code)
            return
        owner_id = user.id

    hub = websocket.app.state.change_hub
    if hub.closed:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return
    event_types = parse_event_types(events)

    # 先注册订阅再握手，握手完成后的变更都不会漏掉
    async with hub.subscribe(owner_id, event_types) as subscription:
        await websocket.accept()

        async def pump():
            async for event in subscription:
                await websocket.send_json(event.model_dump(mode="json", exclude_none=True))

        async def watch():
            # 客户端发来的消息只用于保活，收到断开即结束
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return

        pump_task = asyncio.create_task(pump())
        watch_task = asyncio.create_task(watch())
        try:
            done, pending = await asyncio.wait(
                {pump_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (pump_task, watch_task):
                task.cancel()
            await asyncio.gather(pump_task, watch_task, return_exceptions=True)

        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"推送连接异常: owner={owner_id} error={exc}")

    # 服务端关闭订阅（如应用关闭）时主动断开
    if pump_task in done and watch_task not in done:
        try:
            await websocket.close()
        except RuntimeError:
            pass
    logger.debug(f"推送连接结束: owner={owner_id}")
