"""书签相关 Schema"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime

from ..utils.url import normalize_url, is_http_url


class BookmarkCreate(BaseModel):
    """创建书签"""
    title: str = Field(..., max_length=255)
    url: str = Field(..., max_length=2000)

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """标题去除首尾空白后不能为空"""
        v = v.strip()
        if not v:
            raise ValueError("Please enter a title")
        return v

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """补全协议后必须是 http/https 地址"""
        v = normalize_url(v)
        if not is_http_url(v):
            raise ValueError("Please enter a valid URL")
        return v


class BookmarkRecord(BaseModel):
    """书签记录（接口响应、推送事件和客户端状态共用）"""
    id: str
    user_id: str
    title: str
    url: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
