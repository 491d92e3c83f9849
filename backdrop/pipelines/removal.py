from __future__ import annotations

from typing import Optional

from ..config import Settings
from ..errors import StageError
from ..logger import log
from ..models import Asset
from ..services import ProviderError
from ..services.removebg import RemoveBgClient


class BackgroundRemovalStage:
    """Cuts the subject out of a photo with remove.bg, or passes it through unchanged."""

    name = "removal"

    def __init__(self, client: Optional[RemoveBgClient] = None) -> None:
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackgroundRemovalStage":
        credential = settings.credentials.remove_bg
        client = None
        if credential.usable:
            client = RemoveBgClient(
                credential.value,
                base_url=settings.remove_bg_base_url,
                timeout=settings.removal_timeout_seconds,
            )
        return cls(client)

    @property
    def provider_name(self) -> str:
        if self.client is not None and self.client.is_configured():
            return "remove.bg"
        return "simulated"

    async def remove(self, asset: Asset) -> Asset:
        if not asset.data:
            raise StageError(self.name, "Background removal failed: source image is empty")
        if self.client is None or not self.client.is_configured():
            log.info(f"remove.bg API key not set, simulating background removal for {asset.original_name}")
            return asset.copy()
        try:
            data, mime_type = await self.client.remove_background(
                asset.data,
                asset.original_name,
                content_type=_upload_content_type(asset.mime_type),
            )
        except ProviderError as exc:
            log.error(f"remove.bg call failed: {exc}")
            raise StageError(self.name, f"Background removal failed: {exc}") from exc
        log.info(f"Background removed for {asset.original_name} ({len(data)} bytes)")
        return Asset.from_bytes(data, asset.original_name, mime_type)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def _upload_content_type(mime_type: str) -> str:
    if mime_type and mime_type.startswith("image/"):
        return mime_type
    return "image/jpeg"


__all__ = ["BackgroundRemovalStage"]
