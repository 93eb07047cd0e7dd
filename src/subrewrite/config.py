from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional

from .pipeline import DEFAULT_BATCH_DELAY, DEFAULT_BATCH_SIZE
from .rewrite.retry import DEFAULT_MAX_ATTEMPTS


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class RewriteConfig:
    """
    一次改写任务的配置。

    显式传入的参数优先，其次读取 SUBREWRITE_* 环境变量，最后使用默认值。
    API Key 不保存在配置中，而是在每个任务开始时重新解析。
    """

    input_path: Optional[Path]
    output_path: Optional[Path] = None
    instruction: str = ""
    engine: str = "gemini"
    # None 表示使用引擎默认模型
    model: str | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay: float = DEFAULT_BATCH_DELAY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout: float = 60.0
    style_prompt_path: Optional[Path] = None

    @classmethod
    def from_paths(
        cls,
        input_path: str | Path | None,
        output_path: Optional[str | Path] = None,
        instruction: str | None = None,
        engine: str | None = None,
        model: str | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        max_attempts: int | None = None,
        timeout: float | None = None,
        style_prompt_path: Optional[str | Path] = None,
    ) -> "RewriteConfig":
        # input_path 为 None 表示从标准输入读取
        input_path_obj: Optional[Path] = None
        if input_path is not None:
            input_path_obj = Path(input_path).expanduser().resolve()

        if output_path is not None:
            output_path_obj: Optional[Path] = Path(output_path).expanduser().resolve()
        elif input_path_obj is not None:
            output_path_obj = input_path_obj.with_name(f"{input_path_obj.stem}.rewritten.srt")
        else:
            output_path_obj = None

        if instruction is None:
            instruction = os.getenv("SUBREWRITE_INSTRUCTION", "")
        if engine is None:
            engine = os.getenv("SUBREWRITE_ENGINE", "gemini").strip().lower() or "gemini"
        if model is None:
            model = os.getenv("SUBREWRITE_MODEL", "").strip() or None
        if batch_size is None:
            batch_size = _env_int("SUBREWRITE_BATCH_SIZE", DEFAULT_BATCH_SIZE)
        if batch_delay is None:
            batch_delay = _env_float("SUBREWRITE_BATCH_DELAY", DEFAULT_BATCH_DELAY)
        if max_attempts is None:
            max_attempts = _env_int("SUBREWRITE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)
        if timeout is None:
            timeout = _env_float("SUBREWRITE_TIMEOUT", 60.0)

        if style_prompt_path is None:
            env_style = os.getenv("SUBREWRITE_STYLE_PROMPT", "").strip()
            style_prompt_path = env_style or None
        style_path_obj = (
            Path(style_prompt_path).expanduser().resolve() if style_prompt_path else None
        )

        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        return cls(
            input_path=input_path_obj,
            output_path=output_path_obj,
            instruction=instruction,
            engine=engine,
            model=model,
            batch_size=batch_size,
            batch_delay=batch_delay,
            max_attempts=max_attempts,
            timeout=timeout,
            style_prompt_path=style_path_obj,
        )

    def service_kwargs(self) -> dict[str, object]:
        return {
            "model": self.model,
            "timeout": self.timeout,
            "max_attempts": self.max_attempts,
            "style_prompt_path": self.style_prompt_path,
        }
