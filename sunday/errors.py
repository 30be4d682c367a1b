"""Error taxonomy shared by services and routers."""


class SundayError(Exception):
    """Base class for application errors."""


class PermissionDenied(SundayError):
    """Microphone access was refused or the input device could not be opened."""


class StorageError(SundayError):
    """The local database rejected a read or write."""


class TranscriptionError(SundayError):
    """The speech-to-text service returned an error."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class SynthesisError(SundayError):
    """The language-model call did not succeed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(f"Language model error {status}: {message}" if status else message)
        self.message = message
        self.status = status


class MalformedResponse(SundayError):
    """The language model answered with text that is not the expected JSON."""

    def __init__(self, reason: str, raw_text: str) -> None:
        super().__init__(f"Malformed model response: {reason}")
        self.reason = reason
        self.raw_text = raw_text


class PlaybackError(SundayError):
    """A recording could not be played."""


class InvalidTransition(SundayError):
    """A schedule entry cannot move to the requested status."""


class SynthesisInProgress(SundayError):
    """Another synthesis or correction call is still running."""


class NoTranscripts(SundayError):
    """There is nothing to synthesise for the requested day."""
