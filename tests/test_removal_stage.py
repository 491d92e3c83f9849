from __future__ import annotations

import asyncio
import time

import httpx
import pytest
import respx

from backdrop.errors import StageError
from backdrop.models import Asset
from backdrop.pipelines.removal import BackgroundRemovalStage

REMOVE_BG_URL = "https://api.remove.bg/v1.0/removebg"


@pytest.fixture
def asset(sample_image_bytes) -> Asset:
    return Asset.from_bytes(sample_image_bytes, "photo.jpg", "image/jpeg")


@pytest.mark.asyncio
async def test_simulation_passes_bytes_through(settings, asset) -> None:
    stage = BackgroundRemovalStage.from_settings(settings)
    assert stage.provider_name == "simulated"
    result = await stage.remove(asset)
    assert result == asset
    assert result.data == asset.data
    assert result is not asset


@pytest.mark.asyncio
async def test_placeholder_key_selects_simulation(make_settings, asset) -> None:
    stage = BackgroundRemovalStage.from_settings(make_settings(remove_bg_api_key="your_remove_bg_api_key_here"))
    with respx.mock(assert_all_called=False) as mock:
        route = mock.post(REMOVE_BG_URL)
        result = await stage.remove(asset)
    assert not route.called
    assert result.data == asset.data


@pytest.mark.asyncio
async def test_empty_asset_is_rejected(settings) -> None:
    stage = BackgroundRemovalStage.from_settings(settings)
    with pytest.raises(StageError) as excinfo:
        await stage.remove(Asset.from_bytes(b"", "empty.jpg", "image/jpeg"))
    assert excinfo.value.stage == "removal"


@pytest.mark.asyncio
async def test_live_provider_returns_new_asset(make_settings, asset) -> None:
    stage = BackgroundRemovalStage.from_settings(make_settings(remove_bg_api_key="rb-key"))
    assert stage.provider_name == "remove.bg"
    with respx.mock(assert_all_called=True) as mock:
        route = mock.post(REMOVE_BG_URL).mock(
            return_value=httpx.Response(200, content=b"cutout", headers={"content-type": "image/png"})
        )
        result = await stage.remove(asset)
    request = route.calls[0].request
    body = request.read()
    assert request.headers["X-Api-Key"] == "rb-key"
    assert b'name="size"' in body and b"auto" in body
    assert b'filename="photo.jpg"' in body
    assert result.data == b"cutout"
    assert result.mime_type == "image/png"
    assert result.size_bytes == 6
    assert result.original_name == "photo.jpg"
    await stage.aclose()


@pytest.mark.asyncio
async def test_provider_error_is_not_downgraded(make_settings, asset) -> None:
    stage = BackgroundRemovalStage.from_settings(make_settings(remove_bg_api_key="rb-key"))
    with respx.mock(assert_all_called=True) as mock:
        mock.post(REMOVE_BG_URL).mock(return_value=httpx.Response(402, json={"errors": [{"title": "no credits"}]}))
        with pytest.raises(StageError) as excinfo:
            await stage.remove(asset)
    assert excinfo.value.stage == "removal"
    assert excinfo.value.message.startswith("Background removal failed:")
    assert "402" in excinfo.value.message
    await stage.aclose()


@pytest.mark.asyncio
async def test_transport_error_becomes_stage_error(make_settings, asset) -> None:
    stage = BackgroundRemovalStage.from_settings(make_settings(remove_bg_api_key="rb-key"))
    with respx.mock(assert_all_called=True) as mock:
        mock.post(REMOVE_BG_URL).mock(side_effect=httpx.ConnectTimeout("deadline exceeded"))
        with pytest.raises(StageError):
            await stage.remove(asset)
    await stage.aclose()


@pytest.mark.asyncio
async def test_slow_provider_hits_total_deadline(make_settings, asset) -> None:
    async def stall(request):
        await asyncio.sleep(5)
        return httpx.Response(200, content=b"late")

    stage = BackgroundRemovalStage.from_settings(make_settings(remove_bg_api_key="rb-key", removal_timeout_seconds=0.1))
    with respx.mock(assert_all_called=True) as mock:
        mock.post(REMOVE_BG_URL).mock(side_effect=stall)
        started = time.perf_counter()
        with pytest.raises(StageError) as excinfo:
            await stage.remove(asset)
        elapsed = time.perf_counter() - started
    assert elapsed < 2
    assert "within 0.1s" in excinfo.value.message
    await stage.aclose()
