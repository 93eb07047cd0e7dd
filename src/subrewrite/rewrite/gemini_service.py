from __future__ import annotations

import os
from typing import Any, Dict, List

from subrewrite.errors import ServiceError

from .base import RewriteService


RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {"type": "STRING"},
}


class GeminiRewriteService(RewriteService):
    """
    通过 Google Generative Language REST 接口（generateContent）改写字幕批次。

    环境变量约定（来自 .env 或系统环境）：
      - SUBREWRITE_GEMINI_URL   # 可选，接口根地址，默认 https://generativelanguage.googleapis.com
      - SUBREWRITE_HTTP_PROXY / SUBREWRITE_HTTPS_PROXY
      - SUBREWRITE_LLM_DEBUG    # 设为 1 时打印请求与响应

    请求使用结构化输出（responseSchema 为字符串数组），
    保证模型按输入顺序返回与批次等长的数组。
    """

    engine_name = "gemini"
    default_model = "gemini-3-flash-preview"

    def __init__(self, *args: Any, base_url: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        env_url = os.getenv("SUBREWRITE_GEMINI_URL")
        self.base_url = (base_url or env_url or "https://generativelanguage.googleapis.com").rstrip("/")

    def _endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def _request(self, prompt: str) -> List[Any]:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }
        data = self._post(self._endpoint(), headers, body)

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            # 被安全策略拦截等情况下不会返回 candidates
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            raise ServiceError(f"Gemini response has no candidates (promptFeedback={feedback})")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
        self._debug_print("原始 content 内容", content)
        return self._parse_json_array(content)
