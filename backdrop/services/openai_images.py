from __future__ import annotations

import asyncio
from typing import Any, Dict

import httpx

from . import ProviderError


class OpenAIImagesError(ProviderError):
    pass


class OpenAIImagesClient:
    def __init__(
        self,
        api_key: str,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.size = size
        self.quality = quality
        self.timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_image_url(self, prompt: str) -> str:
        payload = self._build_payload(prompt)
        response = await self._post_generate(payload)
        return self._extract_url(response)

    def _build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "size": self.size,
            "quality": self.quality,
            "n": 1,
        }

    async def _post_generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise OpenAIImagesError("OpenAI API key is not configured")
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    f"{self._base_url}/images/generations",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            raise OpenAIImagesError(f"OpenAI did not answer within {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise OpenAIImagesError(
                f"OpenAI returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise OpenAIImagesError(f"OpenAI request failed: {exc!r}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise OpenAIImagesError(f"OpenAI returned a non-JSON body: {response.text[:200]}") from exc

    def _extract_url(self, response_json: Dict[str, Any]) -> str:
        try:
            url = response_json["data"][0]["url"]
        except (KeyError, IndexError, TypeError) as exc:
            raise OpenAIImagesError("OpenAI response missing image url") from exc
        if not isinstance(url, str) or not url:
            raise OpenAIImagesError("OpenAI response missing image url")
        return url

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["OpenAIImagesClient", "OpenAIImagesError"]
