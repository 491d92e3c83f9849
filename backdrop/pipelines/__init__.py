"""Background removal and generation pipeline."""

from .generation import BackgroundGenerationStage
from .orchestrator import PipelineOrchestrator, SimulatedOrchestrator
from .removal import BackgroundRemovalStage

__all__ = [
    "BackgroundGenerationStage",
    "BackgroundRemovalStage",
    "PipelineOrchestrator",
    "SimulatedOrchestrator",
]
