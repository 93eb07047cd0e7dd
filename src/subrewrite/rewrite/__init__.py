from __future__ import annotations

from .base import RewriteService
from .gemini_service import GeminiRewriteService
from .openai_service import OpenAIRewriteService
from .factory import get_rewrite_service

__all__ = [
    "RewriteService",
    "GeminiRewriteService",
    "OpenAIRewriteService",
    "get_rewrite_service",
]
