from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from ..config import Settings
from ..errors import StageError
from ..logger import log
from ..models import Asset
from ..services import ProviderError
from ..services.openai_images import OpenAIImagesClient
from ..services.stability import StabilityClient

PROMPT_SUFFIX = ", professional photography, realistic lighting and shadows, high quality background"
PLACEHOLDER_COLORS = ("4A90E2", "50E3C2", "B8E986", "F5A623", "D0021B")
PLACEHOLDER_URL = "https://via.placeholder.com/1024x1024/{color}/FFFFFF?text={text}"


class GenerationProvider(ABC):
    name: str

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def generate(self, prompt: str, foreground: Optional[Asset] = None) -> str:
        """Return a URL or data URI for the generated background."""

    async def aclose(self) -> None:
        return None


class OpenAIImageProvider(GenerationProvider):
    name = "openai"

    def __init__(self, client: Optional[OpenAIImagesClient]) -> None:
        self.client = client

    def is_available(self) -> bool:
        return self.client is not None and self.client.is_configured()

    async def generate(self, prompt: str, foreground: Optional[Asset] = None) -> str:
        enhanced_prompt = f"{prompt}{PROMPT_SUFFIX}"
        url = await self.client.generate_image_url(enhanced_prompt)
        log.info("OpenAI background generated")
        return url

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


class StabilityImageProvider(GenerationProvider):
    name = "stability"

    def __init__(self, client: Optional[StabilityClient]) -> None:
        self.client = client

    def is_available(self) -> bool:
        return self.client is not None and self.client.is_configured()

    async def generate(self, prompt: str, foreground: Optional[Asset] = None) -> str:
        image_b64 = await self.client.generate_image_base64(prompt)
        log.info("Stability background generated")
        return f"data:image/png;base64,{image_b64}"

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


class SimulatedImageProvider(GenerationProvider):
    name = "simulated"

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def is_available(self) -> bool:
        return True

    async def generate(self, prompt: str, foreground: Optional[Asset] = None) -> str:
        log.info(f"Simulating AI background generation for prompt: {prompt!r}")
        color = self._rng.choice(PLACEHOLDER_COLORS)
        return PLACEHOLDER_URL.format(color=color, text=quote(prompt, safe=""))


class BackgroundGenerationStage:
    """Generates a background with the first available provider in order."""

    name = "generation"

    def __init__(self, providers: Sequence[GenerationProvider]) -> None:
        if not providers:
            raise ValueError("at least one generation provider is required")
        self.providers: List[GenerationProvider] = list(providers)

    @classmethod
    def from_settings(cls, settings: Settings, rng: Optional[random.Random] = None) -> "BackgroundGenerationStage":
        credentials = settings.credentials
        generation_cfg: Dict[str, Any] = settings.providers.get("generation", {})
        openai_cfg = generation_cfg.get("openai", {})
        stability_cfg = generation_cfg.get("stability", {})
        timeout = settings.generation_timeout_seconds

        openai_client = None
        if credentials.openai.usable:
            openai_client = OpenAIImagesClient(
                credentials.openai.value,
                model=openai_cfg.get("model", "dall-e-3"),
                size=openai_cfg.get("size", "1024x1024"),
                quality=openai_cfg.get("quality", "standard"),
                base_url=settings.openai_base_url,
                timeout=timeout,
            )
        stability_client = None
        if credentials.stability.usable:
            stability_client = StabilityClient(
                credentials.stability.value,
                engine=stability_cfg.get("engine", "stable-diffusion-xl-1024-v1-0"),
                cfg_scale=stability_cfg.get("cfg_scale", 7),
                width=int(stability_cfg.get("width", 1024)),
                height=int(stability_cfg.get("height", 1024)),
                steps=int(stability_cfg.get("steps", 30)),
                base_url=settings.stability_base_url,
                timeout=timeout,
            )
        return cls(
            [
                OpenAIImageProvider(openai_client),
                StabilityImageProvider(stability_client),
                SimulatedImageProvider(rng),
            ]
        )

    def select_provider(self) -> GenerationProvider:
        for provider in self.providers:
            if provider.is_available():
                return provider
        raise StageError(self.name, "AI background generation failed: no provider available")

    @property
    def provider_name(self) -> str:
        return self.select_provider().name

    async def generate(self, prompt: str, foreground: Optional[Asset] = None) -> str:
        provider = self.select_provider()
        log.info(f"Generating background with provider '{provider.name}'")
        try:
            return await provider.generate(prompt, foreground)
        except ProviderError as exc:
            # No cascade: a live provider failure is final for this request.
            log.error(f"{provider.name} generation failed: {exc}")
            raise StageError(self.name, f"AI background generation failed: {exc}") from exc

    async def aclose(self) -> None:
        for provider in self.providers:
            await provider.aclose()


__all__ = [
    "BackgroundGenerationStage",
    "GenerationProvider",
    "OpenAIImageProvider",
    "PLACEHOLDER_COLORS",
    "PROMPT_SUFFIX",
    "SimulatedImageProvider",
    "StabilityImageProvider",
]
