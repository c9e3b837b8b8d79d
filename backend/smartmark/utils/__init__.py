"""工具函数"""
from .security import create_access_token, create_refresh_token, decode_token, user_id_from_access_token
from .url import normalize_url, is_http_url

__all__ = [
    "create_access_token", "create_refresh_token", "decode_token", "user_id_from_access_token",
    "normalize_url", "is_http_url",
]
