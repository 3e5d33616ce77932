import asyncio
import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from timesync.core.config import settings
from timesync.core.errors import ExtractionFailed, InvalidInterval
from timesync.models.interval import UnavailableInterval, parse_date_key
from timesync.services.availability import SlotLike
from timesync.services.llm.gemini_provider import GeminiCompletionClient, TextCompletionClient
from timesync.services.llm.prompts import build_unavailable_time_prompt
from timesync.utils.audit_logger import audit_logger


class ExtractionResponse(BaseModel):
    """Shape the language model must answer with"""
    model_config = ConfigDict(extra="ignore", strict=True)

    unavailable_slots_by_date: Dict[str, List[Any]] = Field(..., alias="unavailableSlotsByDate")


class DroppedEntry(BaseModel):
    """An entry of the model's answer that failed validation and was skipped"""
    date_key: str
    entry: Any = None
    reason: str


class ExtractionResult(BaseModel):
    slots_by_date: Dict[str, List[UnavailableInterval]] = Field(default_factory=dict)
    dropped: List[DroppedEntry] = Field(default_factory=list)


def parse_extraction_response(content: str) -> ExtractionResult:
    """
    Validate the raw model output.

    The document as a whole must match ``ExtractionResponse``, otherwise
    ``ExtractionFailed(kind="parse")`` is raised. Inside a valid document,
    date keys and intervals that do not validate are dropped one by one and
    reported in ``ExtractionResult.dropped``.
    """
    try:
        payload = json.loads(content)
    except (TypeError, ValueError) as e:
        raise ExtractionFailed("parse", f"Response is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ExtractionFailed("parse", f"Expected a JSON object, got {type(payload).__name__}")

    try:
        response = ExtractionResponse.model_validate(payload)
    except ValidationError as e:
        raise ExtractionFailed("parse", f"Response does not match schema: {e.errors()}") from e

    result = ExtractionResult()
    for key, entries in response.unavailable_slots_by_date.items():
        try:
            parse_date_key(key)
        except InvalidInterval as e:
            result.dropped.append(DroppedEntry(date_key=key, reason=str(e)))
            continue

        intervals = []
        for entry in entries:
            if not isinstance(entry, dict) or "start" not in entry or "end" not in entry:
                result.dropped.append(DroppedEntry(date_key=key, entry=entry, reason="missing start/end"))
                continue
            try:
                intervals.append(UnavailableInterval.of(entry["start"], entry["end"]))
            except InvalidInterval as e:
                result.dropped.append(DroppedEntry(date_key=key, entry=entry, reason=str(e)))

        # Keep an explicit empty list, but not a list emptied by dropped entries
        if intervals or not entries:
            result.slots_by_date[key] = intervals

    return result


class SlotExtractor:
    """
    Turns a participant's free-text message into unavailable intervals per date.

    Owns prompt construction and response validation; the completion client
    is injected so tests can substitute a deterministic fake.
    """

    def __init__(self, client: Optional[TextCompletionClient] = None, timeout: Optional[float] = None):
        self.client = client or GeminiCompletionClient()
        self.timeout = settings.LLM_TIMEOUT_SECONDS if timeout is None else timeout

    async def extract(
        self,
        message: str,
        current_datetime: datetime,
        target_date: date,
        existing_slots_by_date: Mapping[str, Iterable[SlotLike]],
        session_id: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract unavailable intervals from ``message``.

        Args:
            message: The participant's free-text message
            current_datetime: Real-world now, used to resolve relative phrases
            target_date: Date the participant is looking at in the calendar
            existing_slots_by_date: Slots already stored for the room
            session_id: Sender session, for audit logging
            room_id: Room the message belongs to, for audit logging

        Raises:
            ExtractionFailed: network/api failures of the call, or an answer
                that does not match the response schema
        """
        prompt = build_unavailable_time_prompt(message, current_datetime, target_date, existing_slots_by_date)

        try:
            content = await asyncio.wait_for(self.client.complete(prompt), timeout=self.timeout)
            result = parse_extraction_response(content)
        except asyncio.TimeoutError as e:
            failure = ExtractionFailed("network", f"No response within {self.timeout}s")
            self._log_failure(failure, session_id, room_id)
            raise failure from e
        except ExtractionFailed as e:
            self._log_failure(e, session_id, room_id)
            raise
        except (ConnectionError, OSError) as e:
            failure = ExtractionFailed("network", f"{type(e).__name__}: {e}")
            self._log_failure(failure, session_id, room_id)
            raise failure from e

        audit_logger.log(
            action="slots_extracted",
            resource_type="llm",
            resource_id=room_id,
            session_id=session_id,
            status="partial" if result.dropped else "success",
            details={
                "dates": sorted(result.slots_by_date),
                "dropped": [entry.model_dump(mode="json") for entry in result.dropped],
            }
        )
        return result

    def _log_failure(self, error: ExtractionFailed, session_id: Optional[str], room_id: Optional[str]) -> None:
        audit_logger.log(
            action="slots_extracted",
            resource_type="llm",
            resource_id=room_id,
            session_id=session_id,
            status="failure",
            details={"kind": error.kind, "error": error.detail}
        )
