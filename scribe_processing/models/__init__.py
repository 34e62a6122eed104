"""Data models for the processing core.

This module provides the task record that moves through the pipeline, the
per-stage result accumulator, and the transcription collaborator's response.
"""

from .task import ProcessingTask, TaskResult, TaskStage, TranscriptionOutcome

__all__ = [
    "ProcessingTask",
    "TaskResult",
    "TaskStage",
    "TranscriptionOutcome",
]
