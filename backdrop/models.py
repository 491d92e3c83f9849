"""Domain values passed between the pipeline stages."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_PROMPT = "professional studio background with soft lighting"


@dataclass(frozen=True)
class Asset:
    data: bytes = field(repr=False)
    mime_type: str
    original_name: str
    size_bytes: int

    @classmethod
    def from_bytes(cls, data: bytes, original_name: str, mime_type: Optional[str] = None) -> "Asset":
        return cls(
            data=bytes(data),
            mime_type=mime_type or "application/octet-stream",
            original_name=original_name,
            size_bytes=len(data),
        )

    def copy(self) -> "Asset":
        return replace(self, data=bytes(self.data))


def resolve_prompt(prompt: Optional[str], default: str = DEFAULT_PROMPT) -> str:
    if not prompt:
        return default
    return prompt


@dataclass(frozen=True)
class ProcessingRequest:
    source_asset: Asset
    prompt: str = DEFAULT_PROMPT
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ProcessingResult:
    foreground_description: str
    processed_reference: str
    prompt: str
    elapsed_millis: int
    steps: List[str] = field(default_factory=list)

    @property
    def processing_time(self) -> str:
        return f"{self.elapsed_millis}ms"

    def summary(self) -> Dict[str, Any]:
        return {
            "original": self.foreground_description,
            "processed": self.processed_reference,
            "prompt": self.prompt,
        }


class ProgressStatus(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    BACKGROUND_REMOVED = "background_removed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    status: ProgressStatus
    message: str
    result: Optional[Dict[str, Any]] = None

    @property
    def event_name(self) -> str:
        if self.status is ProgressStatus.COMPLETED:
            return "processing-complete"
        if self.status is ProgressStatus.FAILED:
            return "processing-error"
        return "processing-status"

    def payload(self) -> Dict[str, Any]:
        if self.status is ProgressStatus.COMPLETED:
            return {"status": self.status.value, "result": dict(self.result or {})}
        return {"status": self.status.value, "message": self.message}

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.event_name, "data": self.payload()}


__all__ = [
    "Asset",
    "DEFAULT_PROMPT",
    "ProcessingRequest",
    "ProcessingResult",
    "ProgressEvent",
    "ProgressStatus",
    "resolve_prompt",
]
