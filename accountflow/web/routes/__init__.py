"""
Route modules for the Account Flow web app.

This package contains modular route definitions split by functionality.
"""

from .auth import router as auth_router
from .users import router as users_router

__all__ = [
    'auth_router',
    'users_router',
]
