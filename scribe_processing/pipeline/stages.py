"""Ordered processing stages: transcribe, translate (conditional), summarize.

Each stage calls one collaborator in ``execute`` and merges the output into
the task in ``apply``. The scheduler owns sequencing, retries and status
reporting; stages only know how to do their one step.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..models import ProcessingTask, TaskStage, TranscriptionOutcome
from .operations import StageOperations

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"


@dataclass
class PipelineContext:
    """Settings shared by the stages of one pipeline.

    Attributes:
        target_language: Language transcripts are translated into
        translation_enabled: Master switch for the translate stage
        metadata: Free-form values for custom stages
    """

    target_language: str = DEFAULT_LANGUAGE
    translation_enabled: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)


class PipelineStage(ABC):
    """One step of the processing pipeline."""

    name: str = "stage"
    stage: TaskStage = TaskStage.QUEUED

    def should_run(self, task: ProcessingTask, context: PipelineContext) -> bool:
        """Skipped stages are neither executed nor reported."""
        return True

    @abstractmethod
    async def execute(self, task: ProcessingTask, context: PipelineContext) -> Any:
        """Call the collaborator and return its output. Must not mutate ``task``."""

    @abstractmethod
    def apply(self, task: ProcessingTask, output: Any) -> None:
        """Merge ``output`` into ``task.result``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class TranscribeStage(PipelineStage):
    name = "transcription"
    stage = TaskStage.TRANSCRIBING

    def __init__(self, operations: StageOperations):
        self.operations = operations

    async def execute(self, task: ProcessingTask, context: PipelineContext) -> TranscriptionOutcome:
        response = await self.operations.transcribe(task.payload_ref, task.language_hint)
        return TranscriptionOutcome.coerce(response)

    def apply(self, task: ProcessingTask, output: TranscriptionOutcome) -> None:
        result = task.result
        result.transcript = output.text
        result.original_text = output.text
        result.detected_language = output.detected_language
        result.confidence = output.confidence
        result.language = task.language_hint or output.detected_language or DEFAULT_LANGUAGE


class TranslateStage(PipelineStage):
    """Translates the transcript when its detected language differs from the target."""

    name = "translation"
    stage = TaskStage.TRANSLATING

    def __init__(self, operations: StageOperations):
        self.operations = operations

    def should_run(self, task: ProcessingTask, context: PipelineContext) -> bool:
        detected = task.result.detected_language
        return (
            context.translation_enabled
            and self.operations.can_translate
            and bool(task.result.transcript)
            and bool(detected)
            and detected != context.target_language
        )

    async def execute(self, task: ProcessingTask, context: PipelineContext) -> str:
        return await self.operations.translate(
            task.result.transcript, task.result.detected_language, context.target_language
        )

    def apply(self, task: ProcessingTask, output: str) -> None:
        result = task.result
        result.translated_text = output
        result.transcript = output
        result.is_translated = True


class SummarizeStage(PipelineStage):
    name = "summary"
    stage = TaskStage.SUMMARIZING

    def __init__(self, operations: StageOperations):
        self.operations = operations

    async def execute(self, task: ProcessingTask, context: PipelineContext) -> str:
        return await self.operations.summarize(task.result.transcript or "", task.result.language)

    def apply(self, task: ProcessingTask, output: str) -> None:
        task.result.summary = output


class ProcessingPipeline:
    """Ordered list of stages plus the context they share."""

    def __init__(self, stages: Iterable[PipelineStage], context: Optional[PipelineContext] = None):
        self.stages: List[PipelineStage] = list(stages)
        if not self.stages:
            raise ValueError("A pipeline needs at least one stage")
        self.context = context or PipelineContext()

    @classmethod
    def default(
        cls,
        operations: StageOperations,
        target_language: str = DEFAULT_LANGUAGE,
        translation_enabled: bool = True,
    ) -> "ProcessingPipeline":
        """Transcribe, then translate when needed, then summarize."""
        return cls(
            [
                TranscribeStage(operations),
                TranslateStage(operations),
                SummarizeStage(operations),
            ],
            PipelineContext(target_language=target_language, translation_enabled=translation_enabled),
        )

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def __iter__(self):
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)
