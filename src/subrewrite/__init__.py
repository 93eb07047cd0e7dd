from __future__ import annotations

from .config import RewriteConfig
from .pipeline import RewritePipeline

__all__ = ["RewriteConfig", "RewritePipeline"]

__version__ = "0.1.0"
