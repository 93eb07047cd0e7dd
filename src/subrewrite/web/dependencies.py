from __future__ import annotations

"""
Web 层与核心改写流程之间的集成点。

负责把 RewritePipeline 的事件流转换为可直接序列化为 NDJSON 的字典。
"""

import json
from typing import Any, Dict, Iterator, List

from subrewrite.config import RewriteConfig
from subrewrite.errors import (
    AuthorizationFailure,
    BatchFailure,
    EmptyInput,
    FormatError,
    JobCancelled,
    RewriteError,
)
from subrewrite.pipeline import (
    BatchCompleted,
    Done,
    Failed,
    Progress,
    RewritePipeline,
    blocks_from_text,
)
from subrewrite.rewrite.base import RewriteService
from subrewrite.rewrite.factory import get_rewrite_service
from subrewrite.subtitles import Block, build_srt


def build_service(config: RewriteConfig) -> RewriteService:
    """
    为单个 Web 请求构建改写服务；测试中可替换此函数注入假服务。
    """
    return get_rewrite_service(config.engine, **config.service_kwargs())


def error_kind(error: RewriteError) -> str:
    if isinstance(error, AuthorizationFailure):
        return "authorization"
    if isinstance(error, BatchFailure):
        return "batch"
    if isinstance(error, FormatError):
        return "format"
    if isinstance(error, EmptyInput):
        return "empty"
    if isinstance(error, JobCancelled):
        return "cancelled"
    return "service"


def error_payload(error: RewriteError) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": "error",
        "kind": error_kind(error),
        "message": str(error),
    }
    if isinstance(error, (BatchFailure, JobCancelled)):
        payload["position"] = error.position
    return payload


def iter_rewrite_events(
    srt_text: str,
    instruction: str,
    config: RewriteConfig,
    service: RewriteService,
) -> Iterator[Dict[str, Any]]:
    """
    执行改写并逐个产出事件字典：batch / progress / error / done。
    """
    try:
        blocks = blocks_from_text(srt_text, source="request")
    except RewriteError as exc:
        yield error_payload(exc)
        return

    pipeline = RewritePipeline(
        service,
        batch_size=config.batch_size,
        batch_delay=config.batch_delay,
    )
    for event in pipeline.iter_events(blocks, instruction):
        if isinstance(event, BatchCompleted):
            yield {
                "type": "batch",
                "position": event.position,
                "blocks": [block.to_dict() for block in event.blocks],
            }
        elif isinstance(event, Progress):
            yield {"type": "progress", "percent": event.percent}
        elif isinstance(event, Failed):
            yield error_payload(event.error)
        elif isinstance(event, Done):
            yield {
                "type": "done",
                "count": len(event.blocks),
                "srt": build_srt(event.blocks),
            }


def to_ndjson(events: Iterator[Dict[str, Any]]) -> Iterator[str]:
    for event in events:
        yield json.dumps(event, ensure_ascii=False) + "\n"


def blocks_from_payload(items: List[Dict[str, Any]]) -> List[Block]:
    return [
        Block(
            index=str(item["index"]),
            timestamp=str(item["timestamp"]),
            content=str(item.get("content", "")),
            start_time=float(item.get("start_time", 0.0)),
            end_time=float(item.get("end_time", 0.0)),
            duration=float(item.get("duration", 0.0)),
        )
        for item in items
    ]
