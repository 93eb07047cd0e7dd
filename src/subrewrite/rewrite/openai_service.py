from __future__ import annotations

import os
from typing import Any, Dict, List

from subrewrite.errors import ServiceError

from .base import RewriteService


class OpenAIRewriteService(RewriteService):
    """
    使用 OpenAI Chat Completions 兼容接口改写字幕批次。

    环境变量约定：
      - SUBREWRITE_OPENAI_URL               # 可选，完整接口 URL，默认 OpenAI 官方地址
      - SUBREWRITE_RESPONSE_FORMAT_KEY      # 可选，部分非 OpenAI 平台使用不同的参数名
    """

    engine_name = "openai"
    default_model = "gpt-4o-mini"

    def __init__(self, *args: Any, url: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.url = url or os.getenv(
            "SUBREWRITE_OPENAI_URL", "https://api.openai.com/v1/chat/completions"
        )
        self.response_format_key = os.getenv(
            "SUBREWRITE_RESPONSE_FORMAT_KEY", "response_format"
        ).strip()

    def _response_format(self) -> Dict[str, Any]:
        # json_schema 的顶层必须是 object，这里把字符串数组包在 texts 字段中
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {
                "texts": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["texts"],
            "additionalProperties": False,
        }
        return {
            "type": "json_schema",
            "json_schema": {
                "name": "subrewrite_batch",
                "strict": True,
                "schema": schema,
            },
        }

    def _request(self, prompt: str) -> List[Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.7,
        }
        if self.response_format_key:
            body[self.response_format_key] = self._response_format()

        data = self._post(self.url, headers, body)

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ServiceError(
                f"LLM response missing 'choices' field, got: {list(data.keys()) if isinstance(data, dict) else data!r}"
            )
        first = choices[0]
        content: str | None = None
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
        # 某些实现可能直接在 text 字段返回
        if content is None and "text" in first:
            content = first.get("text")

        self._debug_print("原始 content 内容", content)
        return self._parse_json_array(content or "")
