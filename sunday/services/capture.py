"""Audio capture session: microphone start/stop/toggle state machine."""

import io
import logging
import threading
import time
import wave
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sunday.errors import PermissionDenied

logger = logging.getLogger("sunday")

IDLE_HINT = "Tap to start recording your activity"
SAMPLE_WIDTH_BYTES = 2  # int16


class CaptureState:
    IDLE = "idle"
    RECORDING = "recording"


@dataclass
class CapturedAudio:
    """A finished capture, ready for the recording store."""

    audio_bytes: bytes
    created_at: datetime
    duration_ms: int
    mime_type: str = "audio/wav"


def format_elapsed(ms: int) -> str:
    total_seconds = ms // 1000
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def encode_wav(pcm: bytes, sample_rate: int, channels: int) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(channels)
        handle.setsampwidth(SAMPLE_WIDTH_BYTES)
        handle.setframerate(sample_rate)
        handle.writeframes(pcm)
    return buffer.getvalue()


def open_input_stream(sample_rate: int, channels: int, device: str | None, callback: Callable) -> Any:
    """Open (but do not start) a sounddevice input stream."""
    import sounddevice as sd

    return sd.InputStream(
        samplerate=sample_rate,
        channels=channels,
        dtype="int16",
        device=device or None,
        callback=callback,
    )


class CaptureSession:
    """Owns the microphone while recording. One instance per running app.

    `toggle()` reads the current state and acts on it immediately; callers are
    expected to disable their control while a transition is pending.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: str | None = None,
        hint_interval_ms: int = 100,
        stream_factory: Callable[..., Any] = open_input_stream,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.hint_interval = hint_interval_ms / 1000
        self._stream_factory = stream_factory
        self._clock = clock
        self._monotonic = monotonic

        self._lock = threading.Lock()
        self._state = CaptureState.IDLE
        self._hint = IDLE_HINT
        self._stream = None
        self._chunks: list[bytes] = []
        self._started_mono: float | None = None
        self._ticker: threading.Thread | None = None
        self._ticker_stop: threading.Event | None = None
        self.last_capture: CapturedAudio | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def hint(self) -> str:
        return self._hint

    @property
    def is_recording(self) -> bool:
        return self._state == CaptureState.RECORDING

    @property
    def elapsed_ms(self) -> int:
        if self._started_mono is None or not self.is_recording:
            return 0
        return int((self._monotonic() - self._started_mono) * 1000)

    def _on_audio(self, indata, frames, time_info, status) -> None:  # noqa: ARG002
        self._chunks.append(indata.tobytes())

    def _tick(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.hint_interval):
            if self.is_recording and not stop_event.is_set():
                self._hint = f"Recording... {format_elapsed(self.elapsed_ms)}"

    def _release(self, stream: Any) -> None:
        """Stop and close the hardware stream; errors here must not keep the device open."""
        try:
            stream.stop()
        except Exception:  # device already gone
            logger.warning("Input stream did not stop cleanly", exc_info=True)
        finally:
            stream.close()

    def start(self) -> None:
        """Open the microphone and begin recording. No-op if already recording.

        Raises PermissionDenied if the input device cannot be opened.
        """
        with self._lock:
            if self._state == CaptureState.RECORDING:
                return

            self._chunks = []
            stream = None
            try:
                stream = self._stream_factory(self.sample_rate, self.channels, self.device, self._on_audio)
                stream.start()
            except Exception as e:  # PortAudio reports refusals and missing devices the same way
                if stream is not None:
                    self._release(stream)
                logger.warning("Microphone unavailable: %s", e)
                raise PermissionDenied(
                    "Could not access microphone. Please allow microphone access and check the input device."
                ) from e

            self._stream = stream
            self._started_mono = self._monotonic()
            self._state = CaptureState.RECORDING
            self._hint = f"Recording... {format_elapsed(0)}"
            # each recording gets its own stop event so a lagging ticker cannot outlive it
            self._ticker_stop = threading.Event()
            self._ticker = threading.Thread(
                target=self._tick, args=(self._ticker_stop,), name="capture-hint", daemon=True
            )
            self._ticker.start()
        logger.info("Capture started (%d Hz, %d ch)", self.sample_rate, self.channels)

    def stop(self) -> CapturedAudio | None:
        """Finish recording and return the captured audio. Returns None if nothing was recording."""
        with self._lock:
            stream, self._stream = self._stream, None
            was_recording = self._state == CaptureState.RECORDING
            duration_ms = self.elapsed_ms

            self._state = CaptureState.IDLE
            ticker, self._ticker = self._ticker, None
            if self._ticker_stop is not None:
                self._ticker_stop.set()
            if ticker is not None:
                ticker.join()
            self._hint = IDLE_HINT
            self._started_mono = None
            if stream is not None:
                self._release(stream)
            if not was_recording:
                return None

            pcm = b"".join(self._chunks)
            self._chunks = []
            captured = CapturedAudio(
                audio_bytes=encode_wav(pcm, self.sample_rate, self.channels),
                created_at=self._clock().replace(microsecond=0),
                duration_ms=duration_ms,
            )
            self.last_capture = captured
        logger.info("Capture stopped after %d ms (%d bytes)", captured.duration_ms, len(captured.audio_bytes))
        return captured

    def toggle(self) -> CapturedAudio | None:
        if self.is_recording:
            return self.stop()
        self.start()
        return None
