"""书签卡片展示辅助函数"""
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse, quote

FAVICON_SERVICE = "https://www.google.com/s2/favicons"


def _shorten(text: str, max_length: int) -> str:
    return text[:max_length] + "…" if len(text) > max_length else text


def truncate_url(url: str, max_length: int = 40) -> str:
    """显示为 主机名 + 路径，超长时截断"""
    parsed = urlparse(url)
    if not parsed.hostname:
        return _shorten(url, max_length)
    return _shorten(parsed.hostname + (parsed.path or "/"), max_length)


def favicon_url(url: str, size: int = 32) -> Optional[str]:
    """站点图标地址，无法解析主机名时返回 None"""
    hostname = urlparse(url).hostname
    if not hostname:
        return None
    return f"{FAVICON_SERVICE}?domain={quote(hostname)}&sz={size}"


def time_ago(created_at: datetime, now: Optional[datetime] = None) -> str:
    """相对时间：Just now / 5m ago / 3h ago / 2d ago / Mar 4"""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    minutes = int((now - created_at).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{created_at.strftime('%b')} {created_at.day}"
