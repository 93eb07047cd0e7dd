from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from subrewrite.env import load_dotenv_if_present
from subrewrite.config import RewriteConfig
from subrewrite.errors import RewriteError
from subrewrite.pipeline import blocks_from_text
from subrewrite.subtitles import build_srt

from .dependencies import (
    blocks_from_payload,
    build_service,
    error_payload,
    iter_rewrite_events,
    to_ndjson,
)


class BlockPayload(BaseModel):
    index: str
    timestamp: str
    content: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    duration: float = 0.0


class BuildRequest(BaseModel):
    blocks: List[BlockPayload]


class RewriteRequest(BaseModel):
    srt: str
    instruction: str = ""
    batch_size: Optional[int] = Field(default=None, ge=1)
    engine: Optional[str] = None
    model: Optional[str] = None


def create_app() -> FastAPI:
    """
    创建并配置 FastAPI 应用。

    - 加载 .env 环境变量；
    - 注册解析 / 拼装 / 流式改写接口。

    app.state.service_factory 用于按请求构建改写服务，测试中可替换。
    """
    load_dotenv_if_present()

    app = FastAPI(
        title="subrewrite Web",
        description="上传 SRT 字幕并按固定叙事风格批量改写，结果按批次流式返回。",
    )
    app.state.service_factory = build_service

    @app.get("/health", response_class=JSONResponse)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/parse", response_class=JSONResponse)
    async def parse_api(
        file: Optional[UploadFile] = File(None),
        text: str = Form(""),
    ) -> Dict[str, Any]:
        """
        解析上传的 SRT 文件或粘贴的文本，返回字幕块列表。
        """
        if file is not None and file.filename:
            raw = await file.read()
            source = file.filename
            try:
                srt_text = raw.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise HTTPException(status_code=400, detail=f"文件 {source} 不是 UTF-8 编码。") from exc
        else:
            srt_text = text
            source = "pasted text"

        try:
            blocks = blocks_from_text(srt_text, source=source)
        except RewriteError as exc:
            raise HTTPException(status_code=400, detail=error_payload(exc)) from exc
        return {"count": len(blocks), "blocks": [block.to_dict() for block in blocks]}

    @app.post("/api/build", response_class=PlainTextResponse)
    async def build_api(payload: BuildRequest) -> PlainTextResponse:
        blocks = blocks_from_payload([item.model_dump() for item in payload.blocks])
        return PlainTextResponse(build_srt(blocks), media_type="text/plain; charset=utf-8")

    @app.post("/api/rewrite")
    async def rewrite_api(payload: RewriteRequest, request: Request) -> StreamingResponse:
        """
        流式改写：响应为 NDJSON，每行一个事件（batch / progress / error / done）。

        已经发送的 batch 事件在后续失败时依然有效，前端可以直接使用。
        """
        try:
            config = RewriteConfig.from_paths(
                input_path=None,
                instruction=payload.instruction,
                engine=payload.engine,
                model=payload.model,
                batch_size=payload.batch_size,
            )
            service = request.app.state.service_factory(config)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        events = iter_rewrite_events(payload.srt, config.instruction, config, service)
        return StreamingResponse(to_ndjson(events), media_type="application/x-ndjson")

    return app


# 供 uvicorn 等 ASGI 服务器直接引用
app = create_app()


def main() -> None:
    """
    本地启动 Web 服务的入口。

    可通过环境变量控制监听地址与端口：
      - SUBREWRITE_WEB_HOST（默认 127.0.0.1）
      - SUBREWRITE_WEB_PORT（默认 8000）
    """
    import uvicorn

    host = os.getenv("SUBREWRITE_WEB_HOST", "127.0.0.1")
    port_str = os.getenv("SUBREWRITE_WEB_PORT", "8000")
    try:
        port = int(port_str)
    except ValueError:
        port = 8000

    uvicorn.run("subrewrite.web.app:app", host=host, port=port, reload=False)
