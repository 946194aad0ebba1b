from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from array import array
from typing import List, Optional

from saralcap.asr.source_base import SpeechSource, SpeechUnavailable, SpeechUnsupportedError
from saralcap.contracts import TranscriptSegment

logger = logging.getLogger(__name__)


def require_mic_stack() -> None:
    try:
        import faster_whisper  # noqa: F401
        import sounddevice  # noqa: F401
    except ImportError as e:
        raise SpeechUnsupportedError(
            "Microphone captioning needs sounddevice and faster-whisper. "
            "Install with: python -m pip install 'saralcap[mic]'"
        ) from e


def pcm16_rms(pcm16: bytes) -> float:
    if not pcm16:
        return 0.0
    samples = array("h")
    samples.frombytes(pcm16)
    if not samples:
        return 0.0
    return math.sqrt(sum(float(v) * float(v) for v in samples) / len(samples))


def pcm16_to_float32(pcm16: bytes, channels: int):
    import numpy as np

    audio = np.frombuffer(pcm16, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        audio = audio.reshape(-1, channels).mean(axis=1)
    return audio


class WhisperMicSpeechSource(SpeechSource):
    """
    Live microphone recognition: sounddevice capture, energy VAD, faster-whisper.

    Capture runs on a worker thread; listener callbacks are handed to the event
    loop that called start(). Only final segments are produced. The engine ends
    on its own after `idle_timeout_sec` without speech.
    """

    def __init__(
        self,
        *,
        model_size: str = "tiny",
        language: Optional[str] = "en",
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_sec: float = 0.5,
        device: Optional[int] = None,
        rms_threshold: float = 250.0,
        silence_chunks: int = 2,
        idle_timeout_sec: float | None = 8.0,
    ) -> None:
        super().__init__()
        if chunk_sec <= 0:
            raise ValueError("chunk_sec must be > 0")
        if channels not in (1, 2):
            raise ValueError("channels must be 1 or 2")
        if silence_chunks <= 0:
            raise ValueError("silence_chunks must be > 0")
        require_mic_stack()
        self.model_size = model_size
        self.language = language
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.chunk_sec = float(chunk_sec)
        self.device = device
        self.rms_threshold = float(rms_threshold)
        self.silence_chunks = int(silence_chunks)
        self.idle_timeout_sec = idle_timeout_sec
        self._model = None
        self._sequence = 0
        self._active = False
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @staticmethod
    def list_devices() -> str:
        require_mic_stack()
        import sounddevice as sd

        return str(sd.query_devices())

    @property
    def name(self) -> str:
        return "whisper"

    @property
    def running(self) -> bool:
        return self._active

    def start(self) -> None:
        if self.running:
            raise SpeechUnavailable("recognition has already started")
        self._loop = asyncio.get_running_loop()
        self._stop = threading.Event()
        self._active = True
        self._thread = threading.Thread(
            target=self._capture_loop,
            name="saralcap-whisper-mic",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    async def wait_closed(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread.is_alive():
            await asyncio.to_thread(thread.join, timeout)

    def _post(self, method: str, *args) -> None:
        if self.listener is None or self._loop is None:
            return
        if self._loop.is_closed():
            logger.warning("mic_event_dropped", extra={"callback": method})
            return
        try:
            self._loop.call_soon_threadsafe(getattr(self.listener, method), *args)
        except RuntimeError:
            # Loop closed between the check and the call.
            logger.warning("mic_event_dropped", extra={"callback": method})

    def _get_model(self):
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(self.model_size, device="cpu", compute_type="int8")
        return self._model

    def _transcribe(self, pcm16: bytes) -> List[TranscriptSegment]:
        segments, _info = self._get_model().transcribe(
            pcm16_to_float32(pcm16, self.channels),
            language=self.language,
            beam_size=1,
            vad_filter=False,
            condition_on_previous_text=False,
        )
        out: List[TranscriptSegment] = []
        for s in segments:
            text = (s.text or "").strip()
            if not text:
                continue
            self._sequence += 1
            out.append(TranscriptSegment(text=text, is_final=True, sequence=self._sequence))
        return out

    def _finalize(self, parts: List[bytes]) -> None:
        segments = self._transcribe(b"".join(parts))
        if segments:
            self._post("on_result", segments)

    def _capture_loop(self) -> None:
        self._post("on_start")
        try:
            self._capture()
        except Exception:
            logger.exception("mic_capture_failed", extra={"device": self.device})
            self._post("on_error", "audio-capture")
        finally:
            self._active = False
            self._post("on_end")

    def _capture(self) -> None:
        import sounddevice as sd

        frames = max(1, int(round(self.chunk_sec * self.sample_rate)))
        stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="int16",
            device=self.device,
            blocksize=0,
        )
        parts: List[bytes] = []
        trailing_silence = 0
        last_speech = time.monotonic()
        with stream:
            while not self._stop.is_set():
                data, _overflowed = stream.read(frames)
                chunk = bytes(data)
                if pcm16_rms(chunk) >= self.rms_threshold:
                    parts.append(chunk)
                    trailing_silence = 0
                    last_speech = time.monotonic()
                    continue
                if parts:
                    trailing_silence += 1
                    if trailing_silence >= self.silence_chunks:
                        self._finalize(parts)
                        parts = []
                        trailing_silence = 0
                elif (
                    self.idle_timeout_sec is not None
                    and time.monotonic() - last_speech >= self.idle_timeout_sec
                ):
                    logger.info("mic_idle_timeout", extra={"idle_timeout_sec": self.idle_timeout_sec})
                    break
        if parts:
            self._finalize(parts)
