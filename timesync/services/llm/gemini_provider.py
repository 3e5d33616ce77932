import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from google.api_core import exceptions as google_exceptions
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_google_genai.chat_models import ChatGoogleGenerativeAIError

from timesync.core.config import settings
from timesync.core.errors import ExtractionFailed


class TextCompletionClient(Protocol):
    """Anything that turns one prompt into the raw text of a JSON document."""

    async def complete(self, prompt: str) -> str:
        ...


@dataclass
class GeminiConfig:
    temperature: float = 0.3
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 1000


def initialize_gemini_model(api_key: str, model_name: str, config: GeminiConfig):
    """Initialize the Gemini chat model constrained to JSON output."""
    return ChatGoogleGenerativeAI(
        model=model_name,
        temperature=config.temperature,
        top_p=config.top_p,
        top_k=config.top_k,
        max_output_tokens=config.max_output_tokens,
        google_api_key=api_key,  # Pass API key directly
        response_mime_type="application/json",
        max_retries=1,
    )


def get_gemini_model():
    """Get the configured Gemini model."""
    if not settings.GEMINI_API_KEY:
        raise ExtractionFailed("api", "GEMINI_API_KEY is not configured")

    config = GeminiConfig(
        temperature=settings.GEMINI_TEMPERATURE,
        top_p=settings.GEMINI_TOP_P,
        top_k=settings.GEMINI_TOP_K,
        max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
    )
    return initialize_gemini_model(settings.GEMINI_API_KEY, settings.GEMINI_MODEL, config)


_NETWORK_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.RetryError,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
)


def _message_text(content: Any) -> str:
    # Newer SDK versions may return a list of content parts
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content)


class GeminiCompletionClient:
    """
    Text-completion client backed by Gemini.

    Transport problems surface as ``ExtractionFailed(kind="network")``; errors
    reported by the API itself (bad key, quota, rejected request) as
    ``ExtractionFailed(kind="api")``.
    """

    def __init__(self, model: Optional[ChatGoogleGenerativeAI] = None):
        self._model = model

    @property
    def model(self) -> ChatGoogleGenerativeAI:
        if self._model is None:
            self._model = get_gemini_model()
        return self._model

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.model.ainvoke([HumanMessage(content=prompt)])
        except _NETWORK_ERRORS as e:
            raise ExtractionFailed("network", f"{type(e).__name__}: {e}") from e
        except google_exceptions.ResourceExhausted as e:
            raise ExtractionFailed("api", f"quota exceeded: {e}") from e
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise ExtractionFailed("api", f"API key rejected: {e}") from e
        except (google_exceptions.GoogleAPICallError, ChatGoogleGenerativeAIError) as e:
            raise ExtractionFailed("api", f"{type(e).__name__}: {e}") from e

        return _message_text(response.content)
