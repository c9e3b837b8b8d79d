"""书签客户端：本地状态、跨标签页广播与服务端推送的同步"""
from .store import BookmarkStore, FilteredView
from .broadcast import BroadcastBus, BroadcastChannel
from .push import HubPushFeed, WebSocketPushFeed, parse_change_event
from .data_access import BookmarkDataAccess, RemoteBookmarkAPI, validate_bookmark_input
from .reconciler import SyncReconciler
from .session import DashboardSession, Notification
from .format import favicon_url, time_ago, truncate_url

__all__ = [
    "BookmarkStore", "FilteredView",
    "BroadcastBus", "BroadcastChannel",
    "HubPushFeed", "WebSocketPushFeed", "parse_change_event",
    "BookmarkDataAccess", "RemoteBookmarkAPI", "validate_bookmark_input",
    "SyncReconciler",
    "DashboardSession", "Notification",
    "favicon_url", "time_ago", "truncate_url",
]
