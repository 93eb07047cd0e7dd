from __future__ import annotations

import argparse
import logging
import sys
from typing import List

from .env import load_dotenv_if_present
from .config import RewriteConfig
from .errors import AuthorizationFailure, RewriteError
from .pipeline import RewritePipeline, blocks_from_text
from .rewrite.factory import available_engines, get_rewrite_service
from .subtitles import Block, read_srt, write_srt


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subrewrite",
        description="subrewrite: 按固定叙事风格与自定义指令批量改写 SRT 字幕，保持序号与时间轴不变。",
    )
    parser.add_argument(
        "input",
        type=str,
        help="输入 SRT 文件路径；使用 - 表示从标准输入读取（粘贴内容）。",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="输出 SRT 文件路径（默认: 与输入同目录，文件名加 .rewritten 后缀）。从标准输入读取时必填。",
    )
    parser.add_argument(
        "-i",
        "--instruction",
        type=str,
        default=None,
        help="附加的自定义改写指令，可通过环境变量 SUBREWRITE_INSTRUCTION 配置。",
    )
    parser.add_argument(
        "--engine",
        type=str,
        choices=available_engines(),
        default=None,
        help="改写引擎：gemini / openai（默认 gemini，可通过 SUBREWRITE_ENGINE 配置）。",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="模型名称（默认使用引擎自带的默认模型，可通过 SUBREWRITE_MODEL 配置）。",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="每次请求包含的字幕块数（默认: 10，可通过 SUBREWRITE_BATCH_SIZE 配置）。",
    )
    parser.add_argument(
        "--style-prompt",
        type=str,
        default=None,
        help="替换默认叙事风格说明的 prompt 文件路径。",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="输出调试日志。",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    # 确保在解析参数和使用配置之前加载 .env 中的环境变量
    load_dotenv_if_present()
    if argv is None:
        argv = sys.argv[1:]

    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    from_stdin = args.input == "-"
    if from_stdin and not args.output:
        parser.error("--output is required when reading from stdin")

    try:
        config = RewriteConfig.from_paths(
            input_path=None if from_stdin else args.input,
            output_path=args.output,
            instruction=args.instruction,
            engine=args.engine,
            model=args.model,
            batch_size=args.batch_size,
            style_prompt_path=args.style_prompt,
        )
        if config.input_path is None:
            text = sys.stdin.read()
            source = "<stdin>"
        else:
            text = read_srt(config.input_path)
            source = str(config.input_path)
        blocks = blocks_from_text(text, source=source)

        service = get_rewrite_service(config.engine, **config.service_kwargs())
        pipeline = RewritePipeline(
            service,
            batch_size=config.batch_size,
            batch_delay=config.batch_delay,
        )

        assert config.output_path is not None
        output_path = config.output_path
        done: List[Block] = []

        def on_batch_complete(batch: List[Block]) -> None:
            # 每批完成后立即落盘，后续批次失败时已完成部分仍可使用
            done.extend(batch)
            write_srt(done, output_path)

        def on_progress(percent: int) -> None:
            print(f"   进度: {percent}% ({len(done)}/{len(blocks)})")

        print(f"开始改写: {source}")
        print(f"   字幕块: {len(blocks)}，引擎: {config.engine}，每批: {config.batch_size}")
        result = pipeline.run(
            blocks,
            config.instruction,
            on_batch_complete=on_batch_complete,
            on_progress=on_progress,
        )
        write_srt(result, output_path)
        print("改写完成")
        print(f"   输出: {output_path}")
        print(f"   条目数: {len(result)}")
        return 0
    except KeyboardInterrupt:
        print("\n用户中断")
        return 1
    except AuthorizationFailure as exc:
        print(f"API Key 无效或未配置，请更换后重试: {exc}")
        return exc.code
    except RewriteError as exc:
        print(f"处理失败: {exc}")
        return exc.code
    except (OSError, ValueError) as exc:
        print(f"处理失败: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
