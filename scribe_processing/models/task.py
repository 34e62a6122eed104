"""Data models for recording processing tasks."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class TaskStage(Enum):
    """Lifecycle stage of a processing task."""

    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    TRANSLATING = "translating"
    SUMMARIZING = "summarizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for COMPLETED and FAILED."""
        return self in (TaskStage.COMPLETED, TaskStage.FAILED)

    @property
    def is_active(self) -> bool:
        """True while a pipeline stage owns the task."""
        return self not in (TaskStage.QUEUED, TaskStage.COMPLETED, TaskStage.FAILED)


@dataclass
class TranscriptionOutcome:
    """Response of the transcription collaborator."""

    text: str
    detected_language: Optional[str] = None
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "text": self.text,
            "detected_language": self.detected_language,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TranscriptionOutcome":
        """Create from dictionary.

        Optional keys may be absent: cached payloads can have empty fields
        stripped, so only ``text`` is required.
        """
        confidence = data.get("confidence")
        return cls(
            text=data["text"],
            detected_language=data.get("detected_language") or None,
            confidence=float(confidence) if confidence is not None else 1.0,
        )

    @classmethod
    def coerce(cls, value: Any) -> "TranscriptionOutcome":
        """Accept either an outcome instance or a mapping with the same keys."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        raise TypeError(f"Unsupported transcription result type: {type(value).__name__}")


@dataclass
class TaskResult:
    """Outputs accumulated by the pipeline stages."""

    transcript: Optional[str] = None
    detected_language: Optional[str] = None
    confidence: Optional[float] = None
    language: Optional[str] = None
    original_text: Optional[str] = None
    translated_text: Optional[str] = None
    is_translated: bool = False
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "transcript": self.transcript,
            "detected_language": self.detected_language,
            "confidence": self.confidence,
            "language": self.language,
            "original_text": self.original_text,
            "translated_text": self.translated_text,
            "is_translated": self.is_translated,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskResult":
        """Create from dictionary."""
        return cls(
            transcript=data.get("transcript"),
            detected_language=data.get("detected_language"),
            confidence=data.get("confidence"),
            language=data.get("language"),
            original_text=data.get("original_text"),
            translated_text=data.get("translated_text"),
            is_translated=bool(data.get("is_translated", False)),
            summary=data.get("summary"),
        )


@dataclass
class ProcessingTask:
    """One recording moving through the processing pipeline.

    Attributes:
        id: Caller-assigned unique identifier (typically the note id)
        payload_ref: Opaque locator of the raw recording; never cached
        language: Caller's language hint, None or "auto" for auto-detect
        stage: Current lifecycle stage
        result: Stage outputs accumulated so far
        error: Human-readable message, only set when stage is FAILED
    """

    id: str
    payload_ref: Optional[str] = None
    language: Optional[str] = None
    stage: TaskStage = TaskStage.QUEUED
    result: TaskResult = field(default_factory=TaskResult)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @property
    def language_hint(self) -> Optional[str]:
        """Language hint to pass to collaborators, None when auto-detecting."""
        if not self.language or self.language == "auto":
            return None
        return self.language

    @property
    def needs_processing(self) -> bool:
        """True for interrupted work: a recording exists but no transcript yet."""
        return bool(self.payload_ref) and not self.result.transcript and not self.is_terminal

    def mark_failed(self, message: str) -> None:
        self.stage = TaskStage.FAILED
        self.error = message

    def mark_completed(self) -> None:
        self.stage = TaskStage.COMPLETED
        self.error = None

    def snapshot(self) -> "ProcessingTask":
        """Independent copy handed to update callbacks."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "payload_ref": self.payload_ref,
            "language": self.language,
            "stage": self.stage.value,
            "result": self.result.to_dict(),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProcessingTask":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            payload_ref=data.get("payload_ref"),
            language=data.get("language"),
            stage=TaskStage(data.get("stage", TaskStage.QUEUED.value)),
            result=TaskResult.from_dict(data.get("result") or {}),
            error=data.get("error"),
        )
