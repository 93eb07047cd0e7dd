from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict


@dataclass(frozen=True)
class Block:
    """
    单条字幕块，对应 SRT 中的一个时间轴块。

    index / timestamp / start_time / end_time / duration 在解析时确定，之后不再改变；
    只有 content 会在改写后被替换（通过 with_content 生成新对象）。
    """

    index: str
    timestamp: str
    content: str
    start_time: float
    end_time: float
    duration: float

    def with_content(self, content: str) -> "Block":
        return replace(self, content=content)

    def to_request_item(self) -> Dict[str, str]:
        # duration 仅作为长度提示传给模型
        return {
            "id": self.index,
            "text": self.content,
            "duration": f"{self.duration:.2f}s",
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "content": self.content,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
        }
