"""
书签地址规范化与校验

客户端提交前和服务端入库前使用同一套规则：
- 缺少协议的输入自动补全为 https://
- 只接受带主机名的 http/https 绝对地址
"""

from urllib.parse import urlparse


# 允许的协议
ALLOWED_SCHEMES = ["http", "https"]

DEFAULT_SCHEME_PREFIX = "https://"


def normalize_url(raw: str) -> str:
    """
    规范化用户输入的地址

    Args:
        raw: 用户输入

    Returns:
        去除首尾空白、必要时补全 https:// 的地址
    """
    url = (raw or "").strip()
    if not url.startswith(("http://", "https://")):
        url = DEFAULT_SCHEME_PREFIX + url
    return url


def is_http_url(url: str) -> bool:
    """检查是否为合法的 http/https 绝对地址"""
    try:
        parsed = urlparse(url)
        # 端口非法时 urlparse 在访问 port 时才报错（如 https://javascript:alert(1)）
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    return bool(parsed.hostname)
