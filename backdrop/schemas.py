from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    original: str
    processed: str
    prompt: str
    processingTime: str
    timestamp: str


class TestUploadResponse(UploadResponse):
    note: str
    steps: List[str]


class ServiceStatus(BaseModel):
    status: str
    timestamp: str
    environment: str
    services: Dict[str, str]
    providers: Dict[str, str]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class CameraUploadPayload(BaseModel):
    """Body of a ``camera-upload`` WebSocket event; unknown keys are kept."""

    prompt: Optional[str] = None
    image: Optional[str] = None
    filename: str = "camera-upload.jpg"

    model_config = ConfigDict(extra="allow")

    @field_validator("prompt", mode="before")
    @classmethod
    def _number_prompt_as_text(cls, value: Any) -> Any:
        # Numbers are accepted as text; bools and containers still fail validation.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value
