from __future__ import annotations

import asyncio
from typing import Any, Dict

import httpx

from . import ProviderError


class StabilityError(ProviderError):
    pass


class StabilityClient:
    def __init__(
        self,
        api_key: str,
        engine: str = "stable-diffusion-xl-1024-v1-0",
        cfg_scale: float = 7,
        width: int = 1024,
        height: int = 1024,
        steps: int = 30,
        base_url: str = "https://api.stability.ai/v1",
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.engine = engine
        self.cfg_scale = cfg_scale
        self.width = width
        self.height = height
        self.steps = steps
        self.timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_image_base64(self, prompt: str) -> str:
        payload = self._build_payload(prompt)
        response = await self._post_generate(payload)
        return self._extract_image(response)

    def _build_payload(self, prompt: str) -> Dict[str, Any]:
        # The API supports several samples; one request always yields one image here.
        return {
            "text_prompts": [{"text": prompt}],
            "cfg_scale": self.cfg_scale,
            "height": self.height,
            "width": self.width,
            "steps": self.steps,
            "samples": 1,
        }

    async def _post_generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise StabilityError("Stability API key is not configured")
        url = f"{self._base_url}/generation/{self.engine}/text-to-image"
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Accept": "application/json",
                    },
                    json=payload,
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            raise StabilityError(f"Stability did not answer within {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise StabilityError(
                f"Stability returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise StabilityError(f"Stability request failed: {exc!r}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise StabilityError(f"Stability returned a non-JSON body: {response.text[:200]}") from exc

    def _extract_image(self, response_json: Dict[str, Any]) -> str:
        try:
            data_b64 = response_json["artifacts"][0]["base64"]
        except (KeyError, IndexError, TypeError) as exc:
            raise StabilityError("Stability response missing base64 artifact") from exc
        if not isinstance(data_b64, str) or not data_b64:
            raise StabilityError("Stability response missing base64 artifact")
        return data_b64

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["StabilityClient", "StabilityError"]
