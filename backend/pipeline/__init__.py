"""
Scene generation pipeline package.

This package contains the core components for turning a concept into a
multi-scene video:
- Script resolution and duration reconciliation
- Continuity tracking between scenes
- Scene generation, stitching and run orchestration
- Error handling for robust pipeline execution
"""

__version__ = "0.1.0"

from .asset_manager import AssetManager
from .errors import PipelineError, ErrorCode, should_retry

__all__ = [
    "AssetManager",
    "PipelineError",
    "ErrorCode",
    "should_retry",
]
