from __future__ import annotations

import time
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from backdrop.errors import StageError
from backdrop.models import Asset
from backdrop.pipelines.generation import BackgroundGenerationStage
from backdrop.pipelines.orchestrator import (
    SIMULATED_BACKGROUND_URL,
    SIMULATED_STEPS,
    PipelineOrchestrator,
    SimulatedOrchestrator,
)
from backdrop.pipelines.removal import BackgroundRemovalStage


@pytest.fixture
def asset(sample_image_bytes) -> Asset:
    return Asset.from_bytes(sample_image_bytes, "photo.jpg", "image/jpeg")


class _Recorder:
    def __init__(self, events: list) -> None:
        self.events = events

    async def removal_completed(self) -> None:
        self.events.append("removal_completed")


@pytest.mark.asyncio
async def test_process_without_credentials(settings, asset) -> None:
    orchestrator = PipelineOrchestrator.from_settings(settings)
    result = await orchestrator.process(asset, "beach sunset")
    assert result.foreground_description == f"Original image processed ({asset.size_bytes} bytes)"
    assert "beach%20sunset" in result.processed_reference
    assert result.prompt == "beach sunset"
    assert result.elapsed_millis >= 1
    assert result.processing_time == f"{result.elapsed_millis}ms"


@pytest.mark.asyncio
async def test_removal_finishes_before_generation_starts(settings, asset) -> None:
    events: list = []
    removal = BackgroundRemovalStage.from_settings(settings)
    generation = BackgroundGenerationStage.from_settings(settings)
    original_remove = removal.remove
    original_generate = generation.generate

    async def remove(item):
        events.append("remove")
        return await original_remove(item)

    async def generate(prompt, foreground=None):
        events.append("generate")
        assert foreground is not None
        return await original_generate(prompt, foreground)

    removal.remove = remove  # type: ignore[assignment]
    generation.generate = generate  # type: ignore[assignment]
    orchestrator = PipelineOrchestrator(removal, generation)
    await orchestrator.process(asset, "forest", observer=_Recorder(events))
    assert events == ["remove", "removal_completed", "generate"]


@pytest.mark.asyncio
async def test_removal_failure_aborts_pipeline(make_settings, asset) -> None:
    orchestrator = PipelineOrchestrator.from_settings(make_settings(remove_bg_api_key="rb-key"))
    orchestrator.generation.generate = AsyncMock()  # type: ignore[assignment]
    observer = _Recorder([])
    with respx.mock(assert_all_called=True) as mock:
        mock.post("https://api.remove.bg/v1.0/removebg").mock(return_value=httpx.Response(500, text="down"))
        with pytest.raises(StageError) as excinfo:
            await orchestrator.process(asset, "forest", observer=observer)
    assert excinfo.value.stage == "removal"
    assert excinfo.value.message.startswith("Processing failed: Background removal failed:")
    orchestrator.generation.generate.assert_not_called()
    assert observer.events == []
    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_generation_failure_is_wrapped(make_settings, asset) -> None:
    orchestrator = PipelineOrchestrator.from_settings(make_settings(openai_api_key="sk-test"))
    with respx.mock(assert_all_called=True) as mock:
        mock.post("https://api.openai.com/v1/images/generations").mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(StageError) as excinfo:
            await orchestrator.process(asset, "forest")
    assert excinfo.value.stage == "generation"
    assert excinfo.value.message.startswith("Processing failed: AI background generation failed:")
    await orchestrator.aclose()


@pytest.mark.asyncio
async def test_observer_errors_do_not_fail_processing(settings, asset) -> None:
    class _Broken:
        async def removal_completed(self) -> None:
            raise RuntimeError("socket gone")

    orchestrator = PipelineOrchestrator.from_settings(settings)
    result = await orchestrator.process(asset, "forest", observer=_Broken())
    assert result.prompt == "forest"


@pytest.mark.asyncio
async def test_simulated_orchestrator_waits_both_delays(asset) -> None:
    events: list = []
    orchestrator = SimulatedOrchestrator(removal_delay=0.05, generation_delay=0.1)
    started = time.perf_counter()
    result = await orchestrator.process(asset, "anything at all", observer=_Recorder(events))
    elapsed = time.perf_counter() - started
    assert elapsed >= 0.14
    assert result.elapsed_millis >= 140
    assert result.processed_reference == SIMULATED_BACKGROUND_URL
    assert result.steps == list(SIMULATED_STEPS)
    assert len(result.steps) == 3
    assert result.foreground_description == f"TEST: photo.jpg ({asset.size_bytes} bytes)"
    assert events == ["removal_completed"]
