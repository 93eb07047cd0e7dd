from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from subrewrite.subtitles import Block


DEFAULT_STYLE_FILE = "storyteller_style.md"

OUTPUT_REQUIREMENT = (
    "YÊU CẦU ĐẦU RA: Trả về DUY NHẤT một mảng JSON chứa các chuỗi (strings) "
    "tiếng Việt tương ứng với từng ID theo đúng thứ tự."
)


def load_style_prompt(path: str | Path | None = None) -> str:
    """
    加载固定的叙事风格说明。

    - 未指定 path 时读取包内 prompts/storyteller_style.md；
    - 指定 path 时读取该文件（用于替换默认风格）。
    """
    if path is None:
        prompt_path = Path(__file__).resolve().parents[1] / "prompts" / DEFAULT_STYLE_FILE
    else:
        prompt_path = Path(path).expanduser()
    if not prompt_path.is_file():
        raise FileNotFoundError(f"Prompt file not found: {prompt_path}")
    return prompt_path.read_text(encoding="utf-8").strip()


def build_request_items(blocks: Sequence[Block]) -> List[Dict[str, Any]]:
    return [block.to_request_item() for block in blocks]


def build_prompt(style: str, instruction: str, blocks: Sequence[Block]) -> str:
    """
    将风格说明、用户自定义指令与 JSON 批次拼接为单个提示词。
    """
    payload = json.dumps(build_request_items(blocks), ensure_ascii=False)
    return (
        f"{style}\n\n"
        "USER CUSTOM INSTRUCTIONS:\n"
        f'"{instruction}"\n\n'
        "DỮ LIỆU ĐẦU VÀO (JSON):\n"
        f"{payload}\n\n"
        f"{OUTPUT_REQUIREMENT}\n"
    )
