from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List

from .types import Block


_SEGMENT_SPLIT_RE = re.compile(r"\r?\n\s*\r?\n")
_LINE_SPLIT_RE = re.compile(r"\r?\n")
TIME_RE = re.compile(r"(\d{2}:\d{2}:\d{2},\d{3}) --> (\d{2}:\d{2}:\d{2},\d{3})")


def _time_to_seconds(value: str) -> float:
    hours, minutes, rest = value.split(":")
    seconds, millis = rest.split(",")
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


def parse_srt(text: str) -> List[Block]:
    """
    将 SRT 文本解析为 Block 列表（保持源顺序）。

    - 以空行分隔字幕块，兼容 LF 与 CRLF；
    - 少于 3 行或第二行不是合法时间轴的块会被静默跳过，不会抛出异常；
    - 整体没有可用块时返回空列表，是否视为错误由调用方决定。
    """
    blocks: List[Block] = []
    raw = text.lstrip("\ufeff").strip()
    if not raw:
        return blocks

    for segment in _SEGMENT_SPLIT_RE.split(raw):
        lines = _LINE_SPLIT_RE.split(segment)
        if len(lines) < 3:
            continue
        index = lines[0].strip()
        timestamp = lines[1].strip()
        content = "\n".join(lines[2:]).strip()

        match = TIME_RE.search(timestamp)
        if not match:
            continue
        start_time = _time_to_seconds(match.group(1))
        end_time = _time_to_seconds(match.group(2))
        blocks.append(
            Block(
                index=index,
                timestamp=timestamp,
                content=content,
                start_time=start_time,
                end_time=end_time,
                duration=end_time - start_time,
            )
        )
    return blocks


def build_srt(blocks: Iterable[Block]) -> str:
    # 原样输出存储的字段，不重新校验时间轴
    return "\n".join(
        f"{block.index}\n{block.timestamp}\n{block.content}\n" for block in blocks
    )


def read_srt(path: str | Path) -> str:
    in_path = Path(path).expanduser()
    return in_path.read_text(encoding="utf-8-sig")


def write_srt(blocks: Iterable[Block], path: str | Path) -> Path:
    out_path = Path(path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(build_srt(blocks), encoding="utf-8")
    return out_path
