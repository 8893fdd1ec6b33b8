"""
Speech sources feeding the transcript capture session.

A speech source is the upstream recognition capability: it can be started,
stopped or aborted and delivers a stream of typed events (partial results,
final results, end-of-stream and errors). The capture session only depends on
this shape, so any transcription service can sit behind it.

Two sources ship with DropMind:
- QueueSpeechSource, fed programmatically (embedding, tests)
- WhisperFileSource, which transcribes an audio file with OpenAI Whisper and
  replays the segments as a live stream
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

from .config import config, get_client, load_project_env
from .types import FinalResult, PartialResult, SpeechEvent, StreamEnd, StreamError

logger = logging.getLogger(__name__)

NO_SPEECH = "no-speech"
NOT_SUPPORTED = "not-supported"
TRANSCRIPTION_FAILED = "transcription-failed"

SUPPORTED_AUDIO_EXTENSIONS = {".mp3", ".mp4", ".mpeg", ".mpga", ".m4a", ".wav", ".webm"}
MAX_AUDIO_BYTES = 25 * 1024 * 1024  # Whisper upload limit


class SpeechError(Exception):
    """Raised when speech processing fails."""

    pass


class SpeechSource(ABC):
    """Upstream speech recognition capability."""

    def is_available(self) -> bool:
        """Whether the capability can be used at all on this machine."""
        return True

    @abstractmethod
    def start(self) -> None:
        """Begin (or resume) delivering events."""

    @abstractmethod
    def stop(self) -> None:
        """Finish gracefully; pending results may still be flushed."""

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately and drop anything pending."""

    @abstractmethod
    def events(self) -> AsyncIterator[SpeechEvent]:
        """Async stream of recognition events."""


class QueueSpeechSource(SpeechSource):
    """
    Speech source backed by an asyncio queue.

    Events pushed with the push_* helpers are delivered in order. Calls to
    start/stop/abort are counted so callers can observe what the session asked
    of its upstream.
    """

    def __init__(self, available: bool = True, start_error: Optional[Exception] = None):
        self.available = available
        self.start_error = start_error
        self.start_calls = 0
        self.stop_calls = 0
        self.abort_calls = 0
        self.running = False
        self._queue: "asyncio.Queue[SpeechEvent]" = asyncio.Queue()

    def is_available(self) -> bool:
        return self.available

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.start_calls += 1
        self.running = True

    def stop(self) -> None:
        self.stop_calls += 1
        self.running = False

    def abort(self) -> None:
        self.abort_calls += 1
        self.running = False

    def push(self, event: SpeechEvent) -> None:
        self._queue.put_nowait(event)

    def push_partial(self, text: str) -> None:
        self.push(PartialResult(text=text))

    def push_final(self, text: str, confidence: float = 1.0) -> None:
        self.push(FinalResult(text=text, confidence=confidence))

    def push_end(self) -> None:
        self.push(StreamEnd())

    def push_error(self, code: str) -> None:
        self.push(StreamError(code=code))

    async def events(self) -> AsyncIterator[SpeechEvent]:
        while True:
            yield await self._queue.get()


def validate_audio_format(path: str) -> bool:
    """
    Validate if the audio file format is supported.

    Args:
        path: Path to the audio file

    Returns:
        True if format is supported, False otherwise
    """
    return Path(path).suffix.lower() in SUPPORTED_AUDIO_EXTENSIONS


def get_audio_info(path: str) -> dict:
    """
    Get basic information about the audio file.

    Args:
        path: Path to the audio file

    Returns:
        Dictionary with file information
    """
    audio_path = Path(path)

    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")

    stat = audio_path.stat()

    return {
        "path": str(audio_path.absolute()),
        "name": audio_path.name,
        "size_bytes": stat.st_size,
        "size_mb": round(stat.st_size / 1024 / 1024, 2),
        "extension": audio_path.suffix.lower(),
        "supported": validate_audio_format(path),
    }


def _segment_confidence(segment: Any) -> float:
    """Map a Whisper segment's average log probability to [0, 1]."""
    avg_logprob = _field(segment, "avg_logprob")
    if avg_logprob is None:
        return 1.0
    return max(0.0, min(1.0, math.exp(float(avg_logprob))))


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class WhisperFileSource(SpeechSource):
    """
    Replays a Whisper transcription of an audio file as a live event stream.

    The file is transcribed once, on the first start(). Each segment is then
    delivered as a partial result followed by a final result, and the stream
    ends. A restart after that delivers nothing further, so the capture
    session's silence timer closes the session. The exhausted event is set
    once every segment has been delivered.
    """

    def __init__(self, path: str, client: Any = None, model: Optional[str] = None, language: Optional[str] = None):
        self.path = Path(path)
        self._client = client
        self.model = model or config.asr_model
        self.language = language or config.speech_language
        self.detected_language: Optional[str] = None
        self._started = asyncio.Event()
        self._closed = asyncio.Event()
        self.exhausted = asyncio.Event()
        self._delivered = False

    def is_available(self) -> bool:
        if self._client is not None:
            return True
        if not config.has_openai_api_key:
            load_project_env()
        return config.has_openai_api_key

    def validate(self) -> None:
        """
        Check the audio file before any API call.

        Raises:
            FileNotFoundError: If the audio file doesn't exist
            SpeechError: If the path is not a supported file within the size limit
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Audio file not found: {self.path}")

        if not self.path.is_file():
            raise SpeechError(f"Path is not a file: {self.path}")

        if not validate_audio_format(str(self.path)):
            supported = ", ".join(sorted(SUPPORTED_AUDIO_EXTENSIONS))
            raise SpeechError(f"Unsupported audio format: {self.path.suffix} (supported: {supported})")

        file_size = self.path.stat().st_size
        if file_size > MAX_AUDIO_BYTES:
            raise SpeechError(f"Audio file too large: {file_size / 1024 / 1024:.1f}MB (max: 25MB)")

    def start(self) -> None:
        self._started.set()

    def stop(self) -> None:
        self._closed.set()

    def abort(self) -> None:
        self._closed.set()

    def transcribe(self) -> List[FinalResult]:
        """
        Transcribe the audio file into final results, one per segment.

        Raises:
            SpeechError: If transcription fails
        """
        self.validate()
        client = self._client or get_client()

        options = {"model": self.model, "response_format": "verbose_json"}
        if self.language:
            options["language"] = self.language

        try:
            with open(self.path, "rb") as audio_file:
                response = client.audio.transcriptions.create(file=audio_file, **options)
        except Exception as e:
            raise SpeechError(f"Failed to transcribe audio: {str(e)}")

        self.detected_language = _field(response, "language")
        segments = _field(response, "segments") or []

        # Segment texts keep their leading space so they concatenate into the transcript
        results = []
        for segment in segments:
            text = _field(segment, "text") or ""
            if text.strip():
                results.append(FinalResult(text=text, confidence=_segment_confidence(segment)))

        if not results:
            text = _field(response, "text") or ""
            if text.strip():
                results.append(FinalResult(text=text))

        logger.debug("Transcribed %s into %d segments (language: %s)", self.path.name, len(results), self.detected_language)
        return results

    async def events(self) -> AsyncIterator[SpeechEvent]:
        await self._started.wait()

        if not self._delivered:
            self._delivered = True
            try:
                results = await asyncio.to_thread(self.transcribe)
            except (SpeechError, FileNotFoundError) as e:
                logger.warning("Whisper transcription failed: %s", e)
                yield StreamError(code=TRANSCRIPTION_FAILED)
            else:
                if not results:
                    yield StreamError(code=NO_SPEECH)

                for result in results:
                    if self._closed.is_set():
                        return
                    yield PartialResult(text=result.text)
                    yield result

                if not self._closed.is_set():
                    yield StreamEnd()

        self.exhausted.set()
        await self._closed.wait()
