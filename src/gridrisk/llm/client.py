"""
Text Generation Client

Thin wrapper over an OpenAI-compatible chat completions endpoint. Every
failure (missing credential, transport error, non-2xx status, malformed or
empty body) surfaces as TextGenerationError so callers can fall back.
"""
import threading
from typing import Optional

import requests

from config.settings import settings
from src.gridrisk.exceptions import TextGenerationError
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)


class TextGenerationClient:
    """
    Chat completion client with a bounded output size and timeout.

    Args:
        api_key: Bearer credential (defaults to settings.llm_api_key)
        api_url: Endpoint URL
        model: Model name
        timeout: Request timeout in seconds
        http: requests.Session to use. Callers that share one session across
            threads own its thread safety; by default each thread gets its
            own session.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.api_url = api_url or settings.llm_api_url
        self.model = model or settings.llm_model
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds
        self.http = http
        self._local = threading.local()

    def _session(self) -> requests.Session:
        if self.http is not None:
            return self.http
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generate text for a system instruction and user prompt.

        Args:
            system_prompt: System instruction
            user_prompt: User prompt
            max_tokens: Maximum output tokens (defaults to settings.llm_max_tokens)
            temperature: Sampling temperature (defaults to settings.llm_temperature)

        Returns:
            Generated text, stripped

        Raises:
            TextGenerationError: On any failure
        """
        if not self.is_configured:
            raise TextGenerationError("Text generation API key not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "temperature": settings.llm_temperature if temperature is None else temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = self._session().post(self.api_url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("text_generation_request_failed", error=str(e), error_type=type(e).__name__)
            raise TextGenerationError(f"Text generation request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(
                "text_generation_bad_status",
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise TextGenerationError(f"Text generation API returned {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TextGenerationError("Malformed text generation response") from e

        if not content or not content.strip():
            raise TextGenerationError("Empty text generation response")

        logger.debug("text_generation_complete", model=self.model, chars=len(content))
        return content.strip()
