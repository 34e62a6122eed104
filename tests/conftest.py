"""Global pytest fixtures and test doubles.

This module provides shared fixtures for all tests including:
- A controllable clock for TTL and eviction tests
- A recording sleep so retry backoff runs instantly
- Fake transcription/translation/summary collaborators
- An update recorder standing in for the note store
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List, Optional

import pytest

from scribe_processing.config import BaseConfig, reset_processing_config
from scribe_processing.models import ProcessingTask, TaskStage
from scribe_processing.pipeline import StageOperations
from scribe_processing.utils.retry import RetryConfig, RetryingCall


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeOperations:
    """Scripted collaborators with call logs.

    ``fail_*`` counters make the next N calls raise ``ConnectionError``.
    ``gate`` (an asyncio.Event) blocks transcription until set, which lets
    tests hold tasks inside a slot.
    """

    def __init__(
        self,
        text: str = "hello world",
        detected_language: Optional[str] = "en",
        confidence: float = 0.93,
        summary: str = "A short summary.",
        translation: str = "translated text",
    ):
        self.text = text
        self.detected_language = detected_language
        self.confidence = confidence
        self.summary = summary
        self.translation = translation

        self.fail_transcribe = 0
        self.fail_translate = 0
        self.fail_summarize = 0
        self.always_fail_transcribe = False
        self.gate: Optional[asyncio.Event] = None

        self.calls: Dict[str, List[tuple]] = {"transcribe": [], "translate": [], "summarize": []}
        self.active = 0
        self.max_active = 0

    async def transcribe(self, payload_ref: str, language: Optional[str]) -> Dict[str, Any]:
        self.calls["transcribe"].append((payload_ref, language))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.always_fail_transcribe:
                raise ConnectionError("transcription service unavailable")
            if self.fail_transcribe > 0:
                self.fail_transcribe -= 1
                raise ConnectionError("transcription service unavailable")
            return {
                "text": self.text,
                "detected_language": self.detected_language,
                "confidence": self.confidence,
            }
        finally:
            self.active -= 1

    async def translate(self, text: str, from_language: str, to_language: str) -> str:
        self.calls["translate"].append((text, from_language, to_language))
        await asyncio.sleep(0)
        if self.fail_translate > 0:
            self.fail_translate -= 1
            raise ConnectionError("translation service unavailable")
        return self.translation

    async def summarize(self, text: str, language: Optional[str]) -> str:
        self.calls["summarize"].append((text, language))
        await asyncio.sleep(0)
        if self.fail_summarize > 0:
            self.fail_summarize -= 1
            raise ConnectionError("summary service unavailable")
        return self.summary

    def as_operations(self, with_translate: bool = True) -> StageOperations:
        return StageOperations(
            transcribe=self.transcribe,
            summarize=self.summarize,
            translate=self.translate if with_translate else None,
        )


class UpdateRecorder:
    """Async update callback that keeps every snapshot it receives."""

    def __init__(self, fail_on_stage: Optional[TaskStage] = None):
        self.updates: List[ProcessingTask] = []
        self.fail_on_stage = fail_on_stage

    async def __call__(self, task: ProcessingTask) -> None:
        self.updates.append(task)
        if self.fail_on_stage is not None and task.stage is self.fail_on_stage:
            raise RuntimeError(f"note store rejected {task.stage.value} update")

    @property
    def stages(self) -> List[TaskStage]:
        return [update.stage for update in self.updates]

    @property
    def last(self) -> ProcessingTask:
        return self.updates[-1]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retrying_call(recorded_sleep: RecordingSleep) -> RetryingCall:
    """Default retry budget (3 retries, 1s..10s) without real waiting."""
    return RetryingCall(RetryConfig(), sleep=recorded_sleep)


@pytest.fixture
def fake_operations() -> FakeOperations:
    return FakeOperations()


@pytest.fixture
def make_operations():
    """Factory for ``FakeOperations`` with custom responses."""
    return FakeOperations


@pytest.fixture
def update_recorder() -> UpdateRecorder:
    return UpdateRecorder()


@pytest.fixture
def make_recorder():
    """Factory for ``UpdateRecorder`` (e.g. one that fails on a stage)."""
    return UpdateRecorder


@pytest.fixture
def make_task():
    """Factory for processing tasks with a recording reference."""

    def _make(
        task_id: str = "note-1",
        payload_ref: Optional[str] = "file:///recordings/note-1.m4a",
        **kwargs: Any,
    ) -> ProcessingTask:
        return ProcessingTask(id=task_id, payload_ref=payload_ref, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def clean_config_state(monkeypatch):
    """Isolate tests from SCRIBE_* variables, overlays and the shared config."""
    for key in list(os.environ):
        if key.startswith("SCRIBE_"):
            monkeypatch.delenv(key, raising=False)
    BaseConfig.clear_overlays()
    reset_processing_config()
    yield
    BaseConfig.clear_overlays()
    reset_processing_config()
