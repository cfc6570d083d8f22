"""Shared schema exports."""

from .account import AccountView

__all__ = [
    "AccountView",
]
