from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List, Sequence

import requests

from subrewrite.errors import (
    AuthorizationFailure,
    ServiceError,
    TransientServiceError,
)
from subrewrite.subtitles import Block

from .prompt import build_prompt, load_style_prompt
from .retry import DEFAULT_MAX_ATTEMPTS, call_with_retry


logger = logging.getLogger(__name__)

CredentialResolver = Callable[[], str | None]

_RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED"}
_AUTH_STATUSES = {"NOT_FOUND", "UNAUTHENTICATED", "PERMISSION_DENIED"}


def _error_details(response: requests.Response) -> tuple[str, str]:
    """
    从错误响应中提取 (status, message)，兼容 Google 与 OpenAI 两种错误结构。
    """
    try:
        data = response.json()
    except ValueError:
        return "", response.text[:500]
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return "", response.text[:500]
    status = str(error.get("status") or error.get("code") or "")
    message = str(error.get("message") or "")
    return status, message


def classify_http_error(response: requests.Response) -> ServiceError | AuthorizationFailure:
    """
    将失败的 HTTP 响应映射为类型化错误：

      - 429 / RESOURCE_EXHAUSTED            -> TransientServiceError（可重试）
      - 401 / 403 / 404 / NOT_FOUND 等       -> AuthorizationFailure（致命）
      - 其它                                 -> ServiceError
    """
    status, message = _error_details(response)
    code = response.status_code
    text = f"HTTP {code} {status}: {message}".strip()
    if code == 429 or status.upper() in _RATE_LIMIT_STATUSES:
        return TransientServiceError(text, status_code=code)
    if code in {401, 403, 404} or status.upper() in _AUTH_STATUSES:
        return AuthorizationFailure(f"API key rejected or entity not found ({text})")
    return ServiceError(text, status_code=code)


class RewriteService(ABC):
    """
    外部生成式文本服务的单批次改写客户端。

    子类只需实现 _request(prompt)，返回模型给出的 JSON 数组；
    重试、提示词拼接以及按位置回填由基类统一处理。

    凭据通过 credential_resolver 在每个任务开始时（begin_job）重新获取，
    因此在两次任务之间更换 API Key 会立即生效。
    """

    engine_name = "base"
    default_model = ""

    def __init__(
        self,
        credential_resolver: CredentialResolver,
        model: str | None = None,
        timeout: float = 60.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        style_prompt_path: str | Path | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.credential_resolver = credential_resolver
        self.model = model or self.default_model
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.style = load_style_prompt(style_prompt_path)
        self._sleep = sleep
        self._api_key: str | None = None

        # 调试开关：设置 SUBREWRITE_LLM_DEBUG=1 时，会打印请求与原始响应
        self.debug = os.getenv("SUBREWRITE_LLM_DEBUG", "").strip() == "1"

        http_proxy = os.getenv("SUBREWRITE_HTTP_PROXY")
        https_proxy = os.getenv("SUBREWRITE_HTTPS_PROXY")
        proxies: dict[str, str] = {}
        if http_proxy:
            proxies["http"] = http_proxy
        if https_proxy:
            proxies["https"] = https_proxy
        self.proxies = proxies or None

        self.log_path: Path | None = None
        if self.debug:
            log_dir = Path.cwd() / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            self.log_path = log_dir / "llm_debug.log"

    def _debug_print(self, title: str, payload: Any, limit: int | None = 4000) -> None:
        """
        打印调试信息，并对超长内容进行可选截断；日志文件保留完整 UTF-8 内容。
        """
        if not self.debug:
            return
        try:
            console_text = json.dumps(payload, ensure_ascii=True, indent=2)
        except TypeError:
            console_text = repr(payload)
        if limit is not None and len(console_text) > limit:
            console_text = console_text[:limit] + f"\n... (truncated, {len(console_text)} chars total)"
        print(f"\n[LLM DEBUG] {title}")
        print(console_text)

        if self.log_path is not None:
            try:
                file_text = json.dumps(payload, ensure_ascii=False, indent=2)
            except TypeError:
                file_text = repr(payload)
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(f"\n[LLM DEBUG] {title}\n")
                f.write(file_text)
                f.write("\n")

    @property
    def api_key(self) -> str:
        if self._api_key is None:
            raise AuthorizationFailure("No API key resolved; call begin_job() first")
        return self._api_key

    def begin_job(self) -> None:
        key = self.credential_resolver()
        if not key or not key.strip():
            raise AuthorizationFailure(
                f"No API key configured for the {self.engine_name} engine"
            )
        self._api_key = key.strip()
        logger.debug("Resolved credential for %s (model=%s)", self.engine_name, self.model)

    def _post(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> Any:
        """
        发送 JSON POST 请求并返回解析后的 JSON；失败时抛出类型化错误。
        """
        self._debug_print("请求体预览", body)
        try:
            response = requests.post(
                url,
                headers=headers,
                data=json.dumps(body),
                timeout=self.timeout,
                proxies=self.proxies,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ServiceError(f"Request to {self.engine_name} failed: {exc}") from exc

        if not response.ok:
            raise classify_http_error(response)

        try:
            data = response.json()
        except ValueError as json_err:
            snippet = response.text[:500]
            raise ServiceError(
                f"LLM response is not valid JSON, first 500 chars: {snippet}"
            ) from json_err

        self._debug_print("完整响应 JSON", data)
        return data

    @staticmethod
    def _parse_json_array(content: str) -> List[Any]:
        if not content or not content.strip():
            return []
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as parse_err:
            raise ServiceError(
                f"LLM returned non-JSON content (first 500 chars): {content[:500]}"
            ) from parse_err
        if isinstance(parsed, dict):
            parsed = parsed.get("texts", [])
        if not isinstance(parsed, list):
            raise ServiceError(f"LLM returned {type(parsed).__name__}, expected a JSON array")
        return parsed

    @abstractmethod
    def _request(self, prompt: str) -> List[Any]:
        """
        发送一次请求，返回模型输出的字符串数组（尚未与批次对齐）。
        """

    def rewrite_batch(self, blocks: Sequence[Block], instruction: str) -> List[str]:
        """
        改写一个批次，返回与 blocks 一一对应的文本列表。

        返回的数组按位置（而不是 id）映射回批次；缺失或为空的位置保留原文，
        多余的条目被忽略。
        """
        if not blocks:
            return []
        prompt = build_prompt(self.style, instruction, blocks)
        kwargs: dict[str, Any] = {"max_attempts": self.max_attempts}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        texts = call_with_retry(lambda: self._request(prompt), **kwargs)

        if len(texts) != len(blocks):
            logger.warning(
                "Service returned %d texts for a batch of %d blocks",
                len(texts),
                len(blocks),
            )
        results: List[str] = []
        for position, block in enumerate(blocks):
            value = texts[position] if position < len(texts) else None
            if value is None or value == "":
                results.append(block.content)
            else:
                results.append(value if isinstance(value, str) else str(value))
        return results
