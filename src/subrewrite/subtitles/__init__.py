from __future__ import annotations

from .types import Block
from .srt_codec import build_srt, parse_srt, read_srt, write_srt

__all__ = ["Block", "parse_srt", "build_srt", "read_srt", "write_srt"]
