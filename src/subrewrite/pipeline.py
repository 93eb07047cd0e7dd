from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Sequence, Union

from .errors import (
    AuthorizationFailure,
    BatchFailure,
    EmptyInput,
    FormatError,
    JobCancelled,
    RewriteError,
)
from .rewrite.base import RewriteService
from .subtitles import Block, parse_srt


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 0.5


@dataclass(frozen=True)
class BatchCompleted:
    # 1-based，批次首个字幕块在整个序列中的位置
    position: int
    blocks: List[Block]


@dataclass(frozen=True)
class Progress:
    percent: int


@dataclass(frozen=True)
class Failed:
    error: RewriteError


@dataclass(frozen=True)
class Done:
    blocks: List[Block]


JobEvent = Union[BatchCompleted, Progress, Failed, Done]


def blocks_from_text(text: str, source: str = "<input>") -> List[Block]:
    """
    解析调用方提供的 SRT 文本。

    解析器本身会跳过格式错误的块；只有在整体没有任何可用块时才在这里报错：
      - 空白文本     -> EmptyInput
      - 非空但无可用块 -> FormatError
    """
    if not text or not text.strip():
        raise EmptyInput(f"Input {source} is empty")
    blocks = parse_srt(text)
    if not blocks:
        raise FormatError(source)
    return blocks


def chunk_blocks(blocks: Sequence[Block], batch_size: int) -> List[List[Block]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(blocks[i : i + batch_size]) for i in range(0, len(blocks), batch_size)]


def _progress_percent(processed: int, total: int) -> int:
    # 四舍五入（0.5 向上取整）
    return int(math.floor(min(100.0, processed / total * 100) + 0.5))


class RewritePipeline:
    """
    批量改写流程：将字幕块按固定大小分批，逐批（严格串行）调用改写服务，
    每完成一批立即产出结果与进度。

    任何一批失败都会终止剩余批次，已产出的批次保持不变（不回滚）。
    """

    def __init__(
        self,
        service: RewriteService,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.service = service
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def iter_events(
        self,
        blocks: Sequence[Block],
        instruction: str,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[JobEvent]:
        """
        以事件流的形式执行任务。

        每批依次产出 BatchCompleted 与 Progress；最终以 Done 或 Failed 结束。
        消费者处理完事件后才会开始下一批的请求。
        """
        if not blocks:
            yield Failed(EmptyInput())
            return

        total = len(blocks)
        chunks = chunk_blocks(blocks, self.batch_size)
        results: List[Block] = []

        try:
            self.service.begin_job()
        except RewriteError as exc:
            yield Failed(exc)
            return

        logger.info("Rewriting %d blocks in %d batches", total, len(chunks))
        for number, chunk in enumerate(chunks):
            offset = number * self.batch_size
            position = offset + 1
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Job cancelled before block %d", position)
                yield Failed(JobCancelled(position))
                return

            try:
                texts = self.service.rewrite_batch(chunk, instruction)
            except AuthorizationFailure as exc:
                logger.error("Authorization failed at block %d: %s", position, exc)
                yield Failed(exc)
                return
            except Exception as exc:
                logger.error("Batch processing error at block %d: %s", position, exc)
                yield Failed(BatchFailure(position, exc))
                return

            processed = [
                block.with_content(texts[i] if i < len(texts) else block.content)
                for i, block in enumerate(chunk)
            ]
            results.extend(processed)
            yield BatchCompleted(position=position, blocks=processed)
            yield Progress(_progress_percent(offset + len(chunk), total))

            if number < len(chunks) - 1 and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        yield Done(results)

    def run(
        self,
        blocks: Sequence[Block],
        instruction: str,
        on_batch_complete: Callable[[List[Block]], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> List[Block]:
        """
        同步执行整个任务并返回改写后的完整序列。

        on_batch_complete 在每批完成时调用一次（先于该批的 on_progress）；
        失败时抛出对应的 RewriteError，已回调的批次不受影响。
        """
        for event in self.iter_events(blocks, instruction, cancel_event=cancel_event):
            if isinstance(event, BatchCompleted):
                if on_batch_complete is not None:
                    on_batch_complete(event.blocks)
            elif isinstance(event, Progress):
                if on_progress is not None:
                    on_progress(event.percent)
            elif isinstance(event, Failed):
                raise event.error
            elif isinstance(event, Done):
                _check_identity(blocks, event.blocks)
                return event.blocks
        raise RewriteError("Rewrite job ended without a result")


def _check_identity(source: Sequence[Block], result: Sequence[Block]) -> None:
    if len(source) != len(result):
        raise RewriteError(
            f"Block count changed during rewrite: {len(source)} -> {len(result)}"
        )
    for before, after in zip(source, result):
        if before.index != after.index or before.timestamp != after.timestamp:
            raise RewriteError(f"Block identity changed at index {before.index}")
