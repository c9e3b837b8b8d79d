"""
客户端书签状态

当前会话中用户书签的唯一数据源，供界面渲染和搜索。
所有到达路径（本地乐观更新、跨标签页广播、服务端推送）都只通过
upsert_if_absent / remove_by_id 修改状态，两者都是幂等的。
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Set

from ..schemas import BookmarkRecord

logger = logging.getLogger(__name__)


def _sort_key(record: BookmarkRecord):
    """排序键：创建时间，相同时按 ID，保证与到达顺序无关"""
    created_at = record.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at, record.id


class FilteredView:
    """
    惰性、可重复迭代的过滤视图

    每次迭代都基于 store 的最新状态重新计算。
    """

    def __init__(self, store: "BookmarkStore", query: str = ""):
        self._store = store
        self.query = query or ""

    def __iter__(self) -> Iterator[BookmarkRecord]:
        needle = self.query.lower()
        for record in self._store.records():
            if not needle or needle in record.title.lower() or needle in record.url.lower():
                yield record

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"FilteredView(query={self.query!r})"


class BookmarkStore:
    """书签状态（按创建时间倒序）"""

    def __init__(self, owner_id: Optional[str] = None):
        self.owner_id = owner_id
        self._by_id: Dict[str, BookmarkRecord] = {}
        self._ordered: List[BookmarkRecord] = []
        # 已删除的 ID，阻止过期的 insert 事件让记录复活（ID 不会复用）
        self._tombstones: Set[str] = set()
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    def initialize(self, records: Iterable[BookmarkRecord]) -> None:
        """用权威快照初始化（也用于断线重连后的重新同步）"""
        if self._closed:
            return
        self._by_id = {}
        for record in records:
            if not self._accepts(record):
                continue
            self._by_id.setdefault(record.id, record)
        self._initialized = True
        self._reorder()
        logger.debug(f"快照初始化: {len(self._ordered)} 条")

    def upsert_if_absent(self, record: BookmarkRecord) -> bool:
        """不存在同 ID 记录时插入，返回是否插入"""
        if self._closed:
            return False
        if not self._initialized:
            raise RuntimeError("BookmarkStore.initialize() must be called first")
        if record.id in self._by_id or not self._accepts(record):
            return False
        self._by_id[record.id] = record
        self._reorder()
        logger.debug(f"插入书签: {record.id}")
        return True

    def remove_by_id(self, bookmark_id: str) -> bool:
        """删除指定 ID，不存在时不做任何事，返回是否删除"""
        if self._closed or not bookmark_id:
            return False
        self._tombstones.add(bookmark_id)
        if self._by_id.pop(bookmark_id, None) is None:
            return False
        self._reorder()
        logger.debug(f"删除书签: {bookmark_id}")
        return True

    def filtered_view(self, query: str = "") -> FilteredView:
        """标题或地址包含 query（不区分大小写）的记录"""
        return FilteredView(self, query)

    def records(self) -> List[BookmarkRecord]:
        """当前全部记录（副本）"""
        return list(self._ordered)

    def ids(self) -> List[str]:
        return [record.id for record in self._ordered]

    def get(self, bookmark_id: str) -> Optional[BookmarkRecord]:
        return self._by_id.get(bookmark_id)

    def close(self) -> None:
        """会话结束后，后续修改都变为空操作"""
        self._closed = True

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, bookmark_id: object) -> bool:
        return bookmark_id in self._by_id

    def _accepts(self, record: BookmarkRecord) -> bool:
        if record.id in self._tombstones:
            logger.debug(f"忽略已删除的记录: {record.id}")
            return False
        if self.owner_id is not None and record.user_id != self.owner_id:
            logger.warning(f"忽略其他用户的记录: {record.id}")
            return False
        return True

    def _reorder(self) -> None:
        # 每次修改后整体重新排序
        self._ordered = sorted(self._by_id.values(), key=_sort_key, reverse=True)
