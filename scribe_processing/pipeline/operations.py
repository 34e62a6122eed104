"""Collaborator operations consumed by the pipeline stages.

The actual transcription, translation and summary services live outside this
package. They are plain async callables with these contracts:

    transcribe(payload_ref, language_hint) -> TranscriptionOutcome | Mapping
    translate(text, from_language, to_language) -> str
    summarize(text, language_hint) -> str
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from ..models import TranscriptionOutcome

TranscribeFunc = Callable[
    [str, Optional[str]], Awaitable[Union[TranscriptionOutcome, Mapping[str, Any]]]
]
TranslateFunc = Callable[[str, str, str], Awaitable[str]]
SummarizeFunc = Callable[[str, Optional[str]], Awaitable[str]]


@dataclass
class StageOperations:
    """Bundle of collaborator callables used by the default pipeline.

    Attributes:
        transcribe: Turns a recording reference into text
        summarize: Produces a summary of a transcript
        translate: Optional translation; without it the translate stage is skipped
    """

    transcribe: TranscribeFunc
    summarize: SummarizeFunc
    translate: Optional[TranslateFunc] = None

    @property
    def can_translate(self) -> bool:
        return self.translate is not None
