"""Detection + tracking orchestration, result records and rendering."""

from .orchestrator import CancellationToken, PipelineOrchestrator, Seed
from .render import export_video, render_effects, render_visualization
from .results import (
    ResultSource,
    TrackingResult,
    group_by_frame,
    results_to_dataframe,
    save_results,
)

__all__ = [
    "CancellationToken",
    "PipelineOrchestrator",
    "ResultSource",
    "Seed",
    "TrackingResult",
    "export_video",
    "group_by_frame",
    "render_effects",
    "render_visualization",
    "results_to_dataframe",
    "save_results",
]
