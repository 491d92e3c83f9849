from __future__ import annotations

import random
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from backdrop.config import Settings, get_settings
from backdrop.main import create_app

PROVIDER_ENV = (
    "REMOVE_BG_API_KEY",
    "OPENAI_API_KEY",
    "STABILITY_AI_API_KEY",
    "PROVIDERS_CONFIG",
    "LOG_DIR",
)


@pytest.fixture(autouse=True)
def setup_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    yield

    get_settings.cache_clear()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _factory(**overrides) -> Settings:
        values = {
            "simulated_removal_delay": 0.01,
            "simulated_generation_delay": 0.01,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def test_app(settings: Settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def sample_image_bytes() -> bytes:
    # JPEG SOI marker followed by filler; no stage decodes pixels.
    return b"\xff\xd8\xff\xe0" + b"\x10" * 4996
