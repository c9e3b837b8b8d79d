"""书签操作的错误类型"""


class BookmarkError(Exception):
    """书签操作错误基类"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(BookmarkError):
    """标题或地址不合法（不会访问远端）"""
    pass


class PersistenceError(BookmarkError):
    """远端创建/删除/查询失败"""
    pass


class NotFoundError(BookmarkError):
    """记录不存在（或不属于当前用户）"""
    pass


class SignInRequired(BookmarkError):
    """没有有效会话，需要重新登录"""
    pass


class PushFeedError(ConnectionError):
    """推送通道连接失败或中断"""
    pass
