"""
Security Module - Authorization
===============================

[COMPONENTS]
- AuthorizationGuard: caller resolution and principal checks
- AuthStrategy: the identity-resolution strategies a program can select
"""

from .guard import (
    AuthorizationGuard,
    AuthStrategy,
)

__all__ = [
    "AuthorizationGuard",
    "AuthStrategy",
]
