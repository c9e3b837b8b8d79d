"""Pydantic Schemas"""
from .user import UserResponse, Token, RefreshTokenRequest, AuthorizationResponse, OAuthProfile
from .bookmark import BookmarkCreate, BookmarkRecord
from .realtime import ChangeEvent, BroadcastMessage, PUSH_EVENT_TYPES

__all__ = [
    "UserResponse", "Token", "RefreshTokenRequest", "AuthorizationResponse", "OAuthProfile",
    "BookmarkCreate", "BookmarkRecord",
    "ChangeEvent", "BroadcastMessage", "PUSH_EVENT_TYPES",
]
