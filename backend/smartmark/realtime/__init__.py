"""实时变更推送"""
from .hub import ChangeHub, Subscription

__all__ = ["ChangeHub", "Subscription"]
