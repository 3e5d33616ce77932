from datetime import date, datetime
from typing import Iterable, Mapping

from langchain_core.prompts import PromptTemplate

from timesync.services.availability import SlotLike


KOREAN_WEEKDAYS = ["월", "화", "수", "목", "금", "토", "일"]
NO_EXISTING_TIMES = "아직 없음"


UNAVAILABLE_TIME_PROMPT = PromptTemplate.from_template("""
당신은 사용자의 메시지에서 '참석할 수 없는 시간'을 추출하여 JSON으로 반환하는 일정 조율 도우미입니다.

현재 날짜: {current_date}
현재 시간: {current_time}
기준 날짜: {target_date}
이미 등록된 불가능한 시간: {existing_times}

다음 규칙을 따르세요:
1. "내일", "다음 주 금요일" 같은 상대적 표현은 현재 날짜를 기준으로 해석합니다.
2. 날짜가 명시되지 않으면 기준 날짜로 간주합니다.
3. 시간은 24시간제 "HH:MM" 형식으로, 하루의 끝은 "24:00"으로 표기합니다.
4. 시작 시간만 있으면 1시간 동안으로 가정합니다.
5. 모호한 표현은 다음과 같이 해석합니다:
   - 아침: 06:00-10:00
   - 점심: 12:00-14:00
   - 저녁: 18:00-21:00
   - 하루 종일: 00:00-24:00
6. "~시 이후에만 가능" 같은 표현은 그 이전 시간을 불가능한 시간으로 변환합니다.
7. 메시지가 언급한 날짜는 그 날짜의 불가능한 시간 전체를 다시 작성합니다.
   이미 등록된 시간 중 유지해야 할 구간도 함께 포함하고, 사용자가 가능하다고 정정한 구간은 제외합니다.
8. 메시지가 언급하지 않은 날짜는 응답에 포함하지 않습니다.

응답은 반드시 다음 JSON 구조만 사용합니다 (날짜 키는 YYYYMMDD):
{{
  "unavailableSlotsByDate": {{
    "20240615": [
      {{"start": "14:00", "end": "16:00"}}
    ]
  }}
}}

분석할 메시지: {message}
""")


def format_korean_date(day: date) -> str:
    return f"{day.year}년 {day.month}월 {day.day}일 ({KOREAN_WEEKDAYS[day.weekday()]})"


def format_korean_time(moment: datetime) -> str:
    meridiem = "오전" if moment.hour < 12 else "오후"
    hour = moment.hour % 12 or 12
    return f"{meridiem} {hour}:{moment.minute:02d}"


def _interval_text(slot: SlotLike) -> str:
    if isinstance(slot, Mapping):
        return f"{slot['start']}-{slot['end']}"
    return f"{slot.start}-{slot.end}"


def format_existing_times(slots_by_date: Mapping[str, Iterable[SlotLike]]) -> str:
    """Summarize stored slots as ``YYYYMMDD: HH:MM-HH:MM, ... | ...``."""
    entries = [(key, list(slots)) for key, slots in sorted((slots_by_date or {}).items())]
    entries = [(key, slots) for key, slots in entries if slots]
    if not entries:
        return NO_EXISTING_TIMES
    return " | ".join(
        f"{key}: {', '.join(_interval_text(slot) for slot in slots)}" for key, slots in entries
    )


def build_unavailable_time_prompt(
    message: str,
    current_datetime: datetime,
    target_date: date,
    existing_slots_by_date: Mapping[str, Iterable[SlotLike]],
) -> str:
    return UNAVAILABLE_TIME_PROMPT.format(
        message=message,
        current_date=format_korean_date(current_datetime.date()),
        current_time=format_korean_time(current_datetime),
        target_date=format_korean_date(target_date),
        existing_times=format_existing_times(existing_slots_by_date),
    )
