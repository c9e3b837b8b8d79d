"""实时同步消息 Schema"""
from pydantic import BaseModel
from typing import Literal, Optional

from .bookmark import BookmarkRecord

EventType = Literal["insert", "delete"]

# 推送订阅默认关注的事件
PUSH_EVENT_TYPES: frozenset = frozenset({"insert", "delete"})


class ChangeEvent(BaseModel):
    """
    推送通道的变更事件

    - insert: record 为新记录
    - delete: 只保证携带 id，不依赖记录的其他字段
    """
    type: EventType
    record: Optional[BookmarkRecord] = None
    id: Optional[str] = None

    @classmethod
    def inserted(cls, record: BookmarkRecord) -> "ChangeEvent":
        return cls(type="insert", record=record, id=record.id)

    @classmethod
    def deleted(cls, bookmark_id: str) -> "ChangeEvent":
        return cls(type="delete", id=bookmark_id)


class BroadcastMessage(BaseModel):
    """同源标签页之间的广播消息: {kind: added, record} / {kind: removed, id}"""
    kind: Literal["added", "removed"]
    record: Optional[BookmarkRecord] = None
    id: Optional[str] = None

    @classmethod
    def added(cls, record: BookmarkRecord) -> "BroadcastMessage":
        return cls(kind="added", record=record)

    @classmethod
    def removed(cls, bookmark_id: str) -> "BroadcastMessage":
        return cls(kind="removed", id=bookmark_id)

    def to_wire(self) -> dict:
        """只输出该类型需要的字段"""
        if self.kind == "added":
            return {"kind": "added", "record": self.record.model_dump(mode="json")}
        return {"kind": "removed", "id": self.id}
