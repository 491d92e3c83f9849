from __future__ import annotations

import asyncio
import math
import time
from typing import List, Optional, Protocol

from ..config import Settings
from ..errors import StageError
from ..logger import log
from ..models import Asset, ProcessingRequest, ProcessingResult
from .generation import BackgroundGenerationStage
from .removal import BackgroundRemovalStage

SIMULATED_BACKGROUND_URL = "https://via.placeholder.com/1024x1024/4A90E2/FFFFFF?text=AI+Generated+Background"
SIMULATED_STEPS = (
    "Background removal - SIMULATED",
    "AI background generation - SIMULATED",
    "Light matching - SIMULATED",
)


class StageObserver(Protocol):
    async def removal_completed(self) -> None:
        ...


def _elapsed_millis(started: float) -> int:
    return max(1, math.ceil((time.perf_counter() - started) * 1000))


async def _notify_removal(observer: Optional[StageObserver], request_id: str) -> None:
    if observer is None:
        return
    try:
        await observer.removal_completed()
    except Exception as exc:
        log.warning(f"[{request_id}] progress observer failed: {exc}")


class PipelineOrchestrator:
    """Runs background removal then generation for one request."""

    def __init__(self, removal: BackgroundRemovalStage, generation: BackgroundGenerationStage) -> None:
        self.removal = removal
        self.generation = generation

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineOrchestrator":
        return cls(
            BackgroundRemovalStage.from_settings(settings),
            BackgroundGenerationStage.from_settings(settings),
        )

    async def process(self, asset: Asset, prompt: str, observer: Optional[StageObserver] = None) -> ProcessingResult:
        request = ProcessingRequest(source_asset=asset, prompt=prompt)
        started = time.perf_counter()
        log.info(f"[{request.id}] Processing image: {asset.original_name}, prompt: {prompt!r}")
        try:
            log.info(f"[{request.id}] Removing background...")
            foreground = await self.removal.remove(request.source_asset)
            await _notify_removal(observer, request.id)

            log.info(f"[{request.id}] Generating new background...")
            processed = await self.generation.generate(request.prompt, foreground)
        except StageError as exc:
            log.error(f"[{request.id}] {exc.stage} stage failed: {exc.message}")
            raise StageError(exc.stage, f"Processing failed: {exc.message}") from exc

        elapsed = _elapsed_millis(started)
        log.info(f"[{request.id}] Completed in {elapsed}ms")
        return ProcessingResult(
            foreground_description=f"Original image processed ({asset.size_bytes} bytes)",
            processed_reference=processed,
            prompt=request.prompt,
            elapsed_millis=elapsed,
        )

    async def aclose(self) -> None:
        await self.removal.aclose()
        await self.generation.aclose()


class SimulatedOrchestrator:
    """Stands in for the real pipeline with two fixed delays and no provider calls."""

    def __init__(self, removal_delay: float = 2.0, generation_delay: float = 3.0) -> None:
        self.removal_delay = removal_delay
        self.generation_delay = generation_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "SimulatedOrchestrator":
        return cls(settings.simulated_removal_delay, settings.simulated_generation_delay)

    async def process(self, asset: Asset, prompt: str, observer: Optional[StageObserver] = None) -> ProcessingResult:
        request = ProcessingRequest(source_asset=asset, prompt=prompt)
        started = time.perf_counter()
        log.info(f"[{request.id}] Simulating processing for {asset.original_name}")

        await asyncio.sleep(self.removal_delay)
        await _notify_removal(observer, request.id)
        await asyncio.sleep(self.generation_delay)

        steps: List[str] = list(SIMULATED_STEPS)
        return ProcessingResult(
            foreground_description=f"TEST: {asset.original_name} ({asset.size_bytes} bytes)",
            processed_reference=SIMULATED_BACKGROUND_URL,
            prompt=request.prompt,
            elapsed_millis=_elapsed_millis(started),
            steps=steps,
        )

    async def aclose(self) -> None:
        return None


__all__ = [
    "PipelineOrchestrator",
    "SIMULATED_BACKGROUND_URL",
    "SIMULATED_STEPS",
    "SimulatedOrchestrator",
    "StageObserver",
]
