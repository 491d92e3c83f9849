from __future__ import annotations

import asyncio

import httpx

from . import ProviderError


class RemoveBgError(ProviderError):
    pass


class RemoveBgClient:
    def __init__(self, api_key: str, base_url: str = "https://api.remove.bg/v1.0", timeout: float = 30.0) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def remove_background(self, image_bytes: bytes, filename: str, content_type: str = "image/jpeg") -> tuple[bytes, str]:
        """Return the cut-out image bytes and their content type."""
        if not self.api_key:
            raise RemoveBgError("remove.bg API key is not configured")
        files = {"image_file": (filename, image_bytes, content_type)}
        data = {"size": "auto"}
        try:
            # httpx timeouts are per phase; wait_for bounds the whole call.
            response = await asyncio.wait_for(
                self._client.post(
                    f"{self._base_url}/removebg",
                    headers={"X-Api-Key": self.api_key},
                    files=files,
                    data=data,
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except asyncio.TimeoutError as exc:
            raise RemoveBgError(f"remove.bg did not answer within {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise RemoveBgError(
                f"remove.bg returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoveBgError(f"remove.bg request failed: {exc!r}") from exc
        if not response.content:
            raise RemoveBgError("remove.bg returned an empty body")
        media_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return response.content, media_type or "image/png"

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["RemoveBgClient", "RemoveBgError"]
