"""内存缓存（OAuth 登录 state）"""
from cachetools import TTLCache
import secrets

from ..config import settings

# 待完成的 OAuth 授权请求: state -> provider
oauth_states = TTLCache(maxsize=settings.CACHE_MAX_SIZE, ttl=settings.OAUTH_STATE_TTL)


def issue_state(provider: str) -> str:
    """生成一次性 state 并记录"""
    state = secrets.token_urlsafe(32)
    oauth_states[state] = provider
    return state


def consume_state(state: str) -> bool:
    """校验并作废 state，过期或未知的 state 返回 False"""
    if not state:
        return False
    return oauth_states.pop(state, None) is not None
