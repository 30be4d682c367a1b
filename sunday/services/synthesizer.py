"""Schedule synthesizer: transcripts in, validated schedule entries out, via Gemini."""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sunday.config import get_settings
from sunday.errors import MalformedResponse, SynthesisError
from sunday.models.recording import CREATED_AT_FORMAT
from sunday.models.schedule import EntryStatus
from sunday.services.prompts import CORRECTION_PROMPT, REFINEMENT_SUFFIX, SCHEDULE_SYSTEM_PROMPT

logger = logging.getLogger("sunday")

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp])\.?\s*[Mm]\.?$")
RAW_LOG_LIMIT = 500


def normalize_clock(value: str) -> str:
    """Normalise a 12-hour clock string to zero-padded 'HH:MM AM'. Raises ValueError otherwise."""
    match = _CLOCK_RE.match(value.strip())
    if not match:
        raise ValueError(f"'{value}' is not a 12-hour clock time")
    hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        raise ValueError(f"'{value}' is not a 12-hour clock time")
    return f"{hours:02d}:{minutes:02d} {meridiem}M"


class ParsedEntry(BaseModel):
    """Shape every model-produced entry must satisfy."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    start_time: str
    end_time: str
    description: str = Field(min_length=1)
    note: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _clock(cls, value: str) -> str:
        return normalize_clock(value)

    @field_validator("note")
    @classmethod
    def _blank_note(cls, value: str | None) -> str | None:
        return value or None


@dataclass
class DraftEntry:
    """A schedule entry produced by synthesis, not yet persisted."""

    id: str
    start_time: str
    end_time: str
    description: str
    note: str | None = None
    status: str = EntryStatus.PENDING
    rejection_reason: str | None = None


@dataclass(frozen=True)
class TranscriptLine:
    timestamp: datetime
    text: str


@dataclass
class SynthesisResult:
    entries: list[DraftEntry]
    history: list[dict] = field(default_factory=list)
    raw_text: str = ""


def user_message(*texts: str) -> dict:
    return {"role": "user", "parts": [{"text": text} for text in texts]}


def model_message(text: str) -> dict:
    return {"role": "model", "parts": [{"text": text}]}


def format_transcripts(lines: list[TranscriptLine]) -> str:
    """Render transcripts oldest first with local-naive timestamps, as the model sees them."""
    ordered = sorted(lines, key=lambda line: line.timestamp)
    payload = [
        {"timestamp": line.timestamp.replace(tzinfo=None).strftime(CREATED_AT_FORMAT), "transcript": line.text}
        for line in ordered
    ]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _json_slice(text: str, opener: str, closer: str) -> str:
    cleaned = _FENCE_RE.sub("", text).strip()
    start = cleaned.find(opener)
    end = cleaned.rfind(closer)
    if start == -1 or end == -1 or end < start:
        raise MalformedResponse(f"no JSON {'array' if opener == '[' else 'object'} found", raw_text=text)
    return cleaned[start : end + 1]


def _load(text: str, opener: str, closer: str) -> Any:
    try:
        return json.loads(_json_slice(text, opener, closer))
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"invalid JSON ({e.msg})", raw_text=text) from e


def parse_schedule(text: str) -> list[DraftEntry]:
    """Parse a model reply into fresh pending entries."""
    data = _load(text, "[", "]")
    if not isinstance(data, list):
        raise MalformedResponse("expected a JSON array", raw_text=text)
    if not data:
        raise MalformedResponse("the schedule is empty", raw_text=text)

    entries = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedResponse(f"entry {index} is not an object", raw_text=text)
        try:
            parsed = ParsedEntry.model_validate(item)
        except ValidationError as e:
            raise MalformedResponse(f"entry {index} is invalid: {e.errors()[0]['msg']}", raw_text=text) from e
        entries.append(DraftEntry(id=str(uuid.uuid4()), **parsed.model_dump()))
    return entries


def parse_correction(text: str, entry: Any) -> DraftEntry:
    """Parse a single corrected object and merge it over `entry`. Missing fields keep their current value."""
    data = _load(text, "{", "}")
    if not isinstance(data, dict):
        raise MalformedResponse("expected a JSON object", raw_text=text)

    merged = {
        "start_time": data.get("start_time") or entry.start_time,
        "end_time": data.get("end_time") or entry.end_time,
        "description": data.get("description") or entry.description,
        "note": data.get("note") or entry.note,
    }
    try:
        parsed = ParsedEntry.model_validate(merged)
    except ValidationError as e:
        raise MalformedResponse(f"corrected entry is invalid: {e.errors()[0]['msg']}", raw_text=text) from e
    return DraftEntry(id=entry.id, status=EntryStatus.PENDING, rejection_reason=None, **parsed.model_dump())


class ScheduleSynthesizer:
    """Talks to the Gemini generate-content endpoint. Never retries on its own."""

    def __init__(self, api_key: str | None = None, model: str | None = None) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self._client = None

    def _get_client(self):
        """Lazy-create the Gemini client."""
        if self._client is None:
            if not self.api_key:
                raise SynthesisError("Missing Gemini API key")
            from google import genai

            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _generate(self, contents: list[dict]) -> str:
        from google.genai import errors as genai_errors

        client = self._get_client()
        try:
            response = client.models.generate_content(model=self.model, contents=contents)
        except genai_errors.APIError as e:
            raise SynthesisError(e.message or str(e), status=e.code) from e
        except Exception as e:  # transport errors from the SDK's HTTP layer
            raise SynthesisError(f"Language model request failed: {e}") from e

        text = extract_text(response)
        if not text:
            raise MalformedResponse("the model returned no text", raw_text="")
        return text

    def synthesize(
        self,
        transcripts: list[TranscriptLine] | None = None,
        prior_history: list[dict] | None = None,
        refinement_text: str | None = None,
    ) -> SynthesisResult:
        """Produce a fresh batch of entries.

        With no history this sends the day's transcripts under the system instruction.
        With history and `refinement_text` it continues the conversation instead.
        The returned history ends with the model's reply.
        """
        if prior_history:
            if not refinement_text:
                raise ValueError("refinement_text is required when continuing a conversation")
            contents = [*prior_history, user_message(refinement_text + REFINEMENT_SUFFIX)]
        else:
            if not transcripts:
                raise ValueError("transcripts are required for an initial synthesis")
            contents = [user_message(SCHEDULE_SYSTEM_PROMPT, format_transcripts(transcripts))]

        text = self._generate(contents)
        try:
            entries = parse_schedule(text)
        except MalformedResponse:
            logger.warning("Unparseable schedule from model: %s", text[:RAW_LOG_LIMIT])
            raise

        logger.info("Synthesised %d schedule entries (%d history messages)", len(entries), len(contents) + 1)
        return SynthesisResult(entries=entries, history=[*contents, model_message(text)], raw_text=text)

    def correct(self, entry: Any, correction_text: str, recent_history: list[dict]) -> DraftEntry:
        """Re-synthesise one entry from user feedback. The result is pending with no rejection reason."""
        prompt = CORRECTION_PROMPT.format(
            start_time=entry.start_time,
            end_time=entry.end_time,
            description=entry.description,
            note_line=f"- Note: {entry.note}\n" if entry.note else "",
            correction=correction_text,
        )
        window = get_settings().CORRECTION_HISTORY_MESSAGES
        history_tail = recent_history[-window:] if window > 0 else []
        # The window may open on a model turn; the conversation must start with the user.
        while history_tail and history_tail[0].get("role") != "user":
            history_tail = history_tail[1:]

        text = self._generate([*history_tail, user_message(prompt)])
        try:
            return parse_correction(text, entry)
        except MalformedResponse:
            logger.warning("Unparseable correction from model: %s", text[:RAW_LOG_LIMIT])
            raise


def extract_text(response: Any) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(part.text for part in parts if getattr(part, "text", None)).strip()


_schedule_synthesizer: ScheduleSynthesizer | None = None


def get_schedule_synthesizer() -> ScheduleSynthesizer:
    """Get singleton synthesizer instance."""
    global _schedule_synthesizer
    if _schedule_synthesizer is None:
        _schedule_synthesizer = ScheduleSynthesizer()
    return _schedule_synthesizer
