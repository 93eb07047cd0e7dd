from __future__ import annotations

import os
from typing import Any

from .base import CredentialResolver, RewriteService
from .gemini_service import GeminiRewriteService
from .openai_service import OpenAIRewriteService


_ENGINES: dict[str, type[RewriteService]] = {
    "gemini": GeminiRewriteService,
    "openai": OpenAIRewriteService,
}

_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "gemini": ("SUBREWRITE_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("SUBREWRITE_API_KEY", "OPENAI_API_KEY"),
}


def env_credential_resolver(engine: str) -> CredentialResolver:
    """
    返回一个在调用时才读取环境变量的凭据解析函数。

    每个任务开始时都会重新调用，因此 .env 或环境中的 Key 更新后无需重建客户端。
    """
    names = _KEY_ENV_VARS.get(engine.lower(), ("SUBREWRITE_API_KEY",))

    def resolve() -> str | None:
        for name in names:
            value = os.getenv(name)
            if value and value.strip():
                return value.strip()
        return None

    return resolve


def available_engines() -> list[str]:
    return sorted(_ENGINES)


def get_rewrite_service(
    name: str,
    credential_resolver: CredentialResolver | None = None,
    **kwargs: Any,
) -> RewriteService:
    """
    根据名称返回对应的改写服务实例。

    支持：
      - "gemini" : GeminiRewriteService（默认）
      - "openai" : OpenAIRewriteService
    """
    key = name.lower()
    engine_cls = _ENGINES.get(key)
    if engine_cls is None:
        raise ValueError(f"Unknown rewrite engine: {name}")
    if credential_resolver is None:
        credential_resolver = env_credential_resolver(key)
    return engine_cls(credential_resolver, **kwargs)
