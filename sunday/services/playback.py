"""Playback controller: at most one recording plays at a time."""

import io
import logging
import threading
import wave
from collections.abc import Callable
from typing import Any

from sunday.errors import PlaybackError

logger = logging.getLogger("sunday")

UNSUPPORTED_FORMAT = "Unable to play recording. The audio format may not be supported."


class SoundDevicePlayer:
    """Plays a WAV payload on the default output device."""

    def __init__(
        self,
        audio_bytes: bytes,
        mime_type: str,
        on_progress: Callable[[float], None],
        on_finished: Callable[[str | None], None],
    ) -> None:
        try:
            with wave.open(io.BytesIO(audio_bytes), "rb") as handle:
                self.channels = handle.getnchannels()
                self.sample_rate = handle.getframerate()
                sample_width = handle.getsampwidth()
                frames = handle.readframes(handle.getnframes())
        except (wave.Error, EOFError) as e:
            raise PlaybackError(UNSUPPORTED_FORMAT) from e
        if sample_width != 2:
            raise PlaybackError(UNSUPPORTED_FORMAT)

        self._pcm = frames
        self._frame_bytes = self.channels * sample_width
        self._total_frames = len(frames) // self._frame_bytes
        self._position = 0
        self._on_progress = on_progress
        self._on_finished = on_finished
        self._stream = None

    def _callback(self, outdata, frames, time_info, status) -> None:  # noqa: ARG002
        import sounddevice as sd

        start = self._position * self._frame_bytes
        chunk = self._pcm[start : start + frames * self._frame_bytes]
        outdata[:] = b"\x00" * len(outdata)
        outdata[: len(chunk)] = chunk
        self._position += len(chunk) // self._frame_bytes
        if self._total_frames:
            self._on_progress(100.0 * self._position / self._total_frames)
        if self._position >= self._total_frames:
            raise sd.CallbackStop

    def start(self) -> None:
        import sounddevice as sd

        try:
            self._stream = sd.RawOutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                callback=self._callback,
                finished_callback=lambda: self._on_finished(None),
            )
            self._stream.start()
        except sd.PortAudioError as e:
            raise PlaybackError(f"Failed to play recording: {e}") from e

    def stop(self) -> None:
        if self._stream is not None:
            self._stream.abort()
            self._stream.close()
            self._stream = None


class PlaybackController:
    """Single "currently playing" slot with press-to-toggle semantics.

    Players are stopped only after the lock is released: stopping a device
    stream waits for its callback thread, which reports back through `_finished`.
    """

    def __init__(self, player_factory: Callable[..., Any] = SoundDevicePlayer) -> None:
        self._player_factory = player_factory
        self._lock = threading.Lock()
        self._player = None
        self._current_id: str | None = None
        self._progress = 0.0

    @property
    def current_id(self) -> str | None:
        return self._current_id

    @property
    def progress(self) -> float:
        return self._progress

    def _detach(self):
        """Empty the slot and hand back the player that occupied it. Caller holds the lock."""
        player, self._player = self._player, None
        self._current_id = None
        self._progress = 0.0
        return player

    @staticmethod
    def _halt(player) -> None:
        if player is None:
            return
        try:
            player.stop()
        except Exception:  # the device may already be closed
            logger.warning("Player did not stop cleanly", exc_info=True)

    def play(self, recording_id: str, audio_bytes: bytes, mime_type: str) -> bool:
        """Play a recording, or stop it if it is the one already playing.

        Returns True when playback started, False when it was toggled off.
        Raises PlaybackError when the audio cannot be played; the slot is left empty.
        """
        with self._lock:
            toggling_off = self._current_id == recording_id
            previous = self._detach()
        self._halt(previous)
        if toggling_off:
            return False

        def on_progress(percent: float, token: str = recording_id) -> None:
            if self._current_id == token:
                self._progress = min(percent, 100.0)

        def on_finished(error: str | None, token: str = recording_id) -> None:
            self._finished(token, error)

        previous = failed = None
        try:
            with self._lock:
                # a concurrent press may have filled the slot since it was emptied
                previous = self._detach()
                try:
                    player = self._player_factory(audio_bytes, mime_type, on_progress, on_finished)
                    self._player = player
                    self._current_id = recording_id
                    player.start()
                except PlaybackError:
                    failed = self._detach()
                    raise
                except Exception as e:
                    failed = self._detach()
                    raise PlaybackError(f"Failed to play recording: {e}") from e
        finally:
            self._halt(previous)
            self._halt(failed)
        logger.info("Playing recording %s", recording_id)
        return True

    def _finished(self, recording_id: str, error: str | None) -> None:
        with self._lock:
            if self._current_id != recording_id:
                return
            self._player = None
            self._current_id = None
            self._progress = 0.0
        if error:
            logger.warning("Playback of %s ended with error: %s", recording_id, error)

    def stop(self) -> None:
        with self._lock:
            player = self._detach()
        self._halt(player)

    def forget(self, recording_id: str) -> None:
        """Stop playback if `recording_id` is playing (used when a recording is deleted)."""
        with self._lock:
            player = self._detach() if self._current_id == recording_id else None
        self._halt(player)
