"""
Typed failures raised by the scheduling core.

Every error carries a ``user_message`` that the HTTP layer forwards unchanged,
so each failure kind reaches the participant with its own actionable text.
"""
import math
from typing import Literal, Optional


ExtractionFailureKind = Literal["network", "api", "parse"]


class TimeSyncError(Exception):
    """Base class for all core errors."""

    user_message = "요청을 처리하지 못했습니다."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail


class InvalidInterval(TimeSyncError, ValueError):
    """Malformed or inverted clock-time range."""

    user_message = "시간 형식이 올바르지 않습니다. HH:MM 형식으로 시작이 종료보다 빨라야 합니다."


class ExtractionFailed(TimeSyncError):
    """The language model did not yield usable structured data."""

    _messages = {
        "network": "시간 분석 서비스에 연결하지 못했습니다. 잠시 후 다시 시도해주세요.",
        "api": "시간 분석 서비스가 요청을 거절했습니다. 잠시 후 다시 시도해주세요.",
        "parse": "AI 응답을 이해하지 못했습니다. 표현을 바꿔 다시 입력해주세요.",
    }

    retry_safe = True

    def __init__(self, kind: ExtractionFailureKind, detail: str = ""):
        super().__init__(detail or kind)
        self.kind = kind

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return self._messages[self.kind]


class PersistFailed(TimeSyncError):
    """The room store write did not complete."""

    user_message = "캘린더 저장에 실패했습니다. 같은 내용으로 다시 시도해도 안전합니다."

    def __init__(self, detail: str = "", retry_safe: bool = True):
        super().__init__(detail)
        self.retry_safe = retry_safe


class NoDatesInScope(TimeSyncError):
    """Extraction succeeded but nothing could be applied to the room."""

    def __init__(self, reason: Literal["no_dates", "out_of_period"], period: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.period = period

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.reason == "no_dates":
            return "분석할 수 있는 시간 정보가 없습니다. 더 구체적으로 입력해주세요."
        return f"선택된 기간에 해당하는 날짜가 없습니다. (현재 설정: {self.period})"


class RoomNotFound(TimeSyncError):
    user_message = "모임방을 찾을 수 없습니다."


class InvalidRoom(TimeSyncError):
    """Room creation input failed validation."""

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return self.detail


class SubmissionRejected(TimeSyncError):
    """A sender submitted while in flight, too quickly, or while locked out."""

    def __init__(self, reason: Literal["in_flight", "too_fast", "locked_out"], retry_after: float = 0.0):
        super().__init__(reason)
        self.reason = reason
        self.retry_after = retry_after

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.reason == "in_flight":
            return "이전 메시지를 처리하는 중입니다."
        if self.reason == "too_fast":
            return "1초에 한 번만 전송할 수 있습니다."
        return f"너무 많은 요청을 보냈습니다. {math.ceil(self.retry_after)}초 후에 다시 시도해주세요."


class InvalidMessage(TimeSyncError):
    """The participant's message is empty or too long."""

    user_message = "메시지는 1자 이상 500자 이하로 입력해주세요."
