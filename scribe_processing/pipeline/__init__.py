"""Processing pipeline: collaborator operations and the stages that call them."""

from .cached_operations import CachedStageOperations
from .operations import StageOperations
from .stages import (
    PipelineContext,
    PipelineStage,
    ProcessingPipeline,
    SummarizeStage,
    TranscribeStage,
    TranslateStage,
)

__all__ = [
    "CachedStageOperations",
    "PipelineContext",
    "PipelineStage",
    "ProcessingPipeline",
    "StageOperations",
    "SummarizeStage",
    "TranscribeStage",
    "TranslateStage",
]
