from __future__ import annotations

"""
subrewrite Web 子模块

提供基于 FastAPI 的 SRT 解析与流式改写 API。
"""

from .app import app, create_app, main

__all__ = ["app", "create_app", "main"]
