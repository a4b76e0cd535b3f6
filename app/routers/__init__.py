"""
app/routers/__init__.py

ルーターパッケージ
"""
from .match import router as match_router
from .token import router as token_router

__all__ = ["match_router", "token_router"]
