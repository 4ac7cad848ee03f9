# Pipeline orchestration exports
from .deps import PipelineDeps
from .orchestrator import convert_themes_to_events, fetch_market_context, run_pipeline
from .run_manager import RunManager

__all__ = [
    "PipelineDeps",
    "run_pipeline",
    "convert_themes_to_events",
    "fetch_market_context",
    "RunManager",
]
