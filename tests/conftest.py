from __future__ import annotations

import json
from typing import Any, Callable, List

import pytest

from subrewrite.rewrite.base import RewriteService
from subrewrite.subtitles import Block


def make_srt(count: int) -> str:
    parts = []
    for i in range(count):
        start = i * 2
        parts.append(
            f"{i + 1}\n00:00:{start:02d},000 --> 00:00:{start + 1:02d},500\nline {i + 1}\n"
        )
    return "\n".join(parts)


def make_blocks(count: int) -> List[Block]:
    return [
        Block(
            index=str(i + 1),
            timestamp=f"00:00:{i * 2:02d},000 --> 00:00:{i * 2 + 1:02d},500",
            content=f"line {i + 1}",
            start_time=float(i * 2),
            end_time=i * 2 + 1.5,
            duration=1.5,
        )
        for i in range(count)
    ]


class FakeService(RewriteService):
    """
    不访问网络的改写服务：_request 按调用顺序返回预设结果或抛出预设异常。
    """

    engine_name = "fake"
    default_model = "fake-model"

    def __init__(self, responder: Callable[[str, int], List[Any]] | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("sleep", lambda _: None)
        super().__init__(lambda: "test-key", **kwargs)
        self.responder = responder
        self.prompts: List[str] = []
        self.jobs = 0

    def begin_job(self) -> None:
        self.jobs += 1
        super().begin_job()

    def _request(self, prompt: str) -> List[Any]:
        self.prompts.append(prompt)
        call = len(self.prompts)
        if self.responder is not None:
            return self.responder(prompt, call)
        # 默认：把批次里每条 text 转成大写
        payload = prompt.split("DỮ LIỆU ĐẦU VÀO (JSON):\n", 1)[1].split("\n", 1)[0]
        return [item["text"].upper() for item in json.loads(payload)]


@pytest.fixture
def fake_service() -> FakeService:
    return FakeService()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SUBREWRITE_API_KEY",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "OPENAI_API_KEY",
        "SUBREWRITE_ENGINE",
        "SUBREWRITE_MODEL",
        "SUBREWRITE_BATCH_SIZE",
        "SUBREWRITE_INSTRUCTION",
        "SUBREWRITE_STYLE_PROMPT",
        "SUBREWRITE_LLM_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SUBREWRITE_BATCH_DELAY", "0")
