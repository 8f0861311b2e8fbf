"""
OpenAI-compatible chat completions client using direct REST calls.
Handles transport retries and converts every failure into TransportError.
"""
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config import Settings, get_settings
from core.exceptions import ConfigurationError, TransportError
from core.logger import setup_logger, shorten
from llm.pricing import estimate_tokens

logger = setup_logger(__name__)

# Providers match stop sequences as substrings anywhere in the reply
STOP_SEQUENCES = ["---"]


@dataclass(frozen=True)
class Completion:
    """Text returned by the provider plus usage accounting."""
    text: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    model: str


class LLMClient:
    """Wrapper for the chat completions REST API with retry logic."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        """Initialize REST API client."""
        settings = settings or get_settings()
        if not settings.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY environment variable not set",
                details={"required_key": "OPENAI_API_KEY"}
            )

        self.api_url = settings.openai_api_url
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.timeout = settings.openai_timeout
        self.temperature = settings.openai_temperature
        self.session = session or requests.Session()

        logger.info(f"Initialized LLM client with model: {self.model}, url: {self.api_url}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((requests.exceptions.Timeout, requests.exceptions.ConnectionError)),
        reraise=True
    )
    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }
        response = self.session.post(
            self.api_url,
            headers=headers,
            data=json.dumps(payload),
            timeout=self.timeout
        )
        response.raise_for_status()
        return response

    def build_payload(self, system_prompt: str, user_message: str, max_tokens: int) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": max_tokens,
            "stop": STOP_SEQUENCES,
        }
        # GPT-5 models reject custom temperature
        if "gpt-5" not in self.model.lower():
            payload["temperature"] = self.temperature
        return payload

    def complete(self, system_prompt: str, user_message: str, max_tokens: int) -> Completion:
        """
        Request one text completion.

        Args:
            system_prompt: System instruction
            user_message: User message with the encoded batch
            max_tokens: Output token budget

        Returns:
            Completion with reply text and token usage

        Raises:
            TransportError: On timeout, HTTP error, invalid JSON or empty content
        """
        payload = self.build_payload(system_prompt, user_message, max_tokens)
        started = time.monotonic()

        try:
            response = self._post(payload)
            completion_data = response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"LLM request timeout after {self.timeout}s: {e}")
            raise TransportError(
                f"LLM request timeout after {self.timeout}s",
                details={"api_url": self.api_url, "timeout": self.timeout}
            )
        except requests.exceptions.HTTPError as e:
            logger.error(f"LLM HTTP error: {e}")
            raise TransportError(
                f"LLM returned HTTP error: {e}",
                details={
                    "api_url": self.api_url,
                    "status_code": getattr(e.response, "status_code", None),
                }
            )
        except ValueError as e:
            logger.error(f"Failed to parse LLM response as JSON: {e}")
            raise TransportError(
                f"LLM returned invalid JSON: {e}",
                details={"api_url": self.api_url}
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"LLM request failed: {e}")
            raise TransportError(
                f"Failed to connect to LLM API: {str(e)}",
                details={"api_url": self.api_url, "error": str(e)}
            )

        latency_ms = (time.monotonic() - started) * 1000
        if not isinstance(completion_data, dict):
            raise TransportError(
                "Unexpected response structure from LLM",
                details={"type": type(completion_data).__name__}
            )
        content = extract_content(completion_data)

        if not content or not content.strip():
            logger.error(f"Empty completion content; response keys: {list(completion_data.keys())}")
            raise TransportError(
                "No content received from LLM",
                details={"model": self.model}
            )

        usage = completion_data.get("usage") or {}
        input_tokens = usage.get("prompt_tokens") or estimate_tokens(system_prompt + user_message)
        output_tokens = usage.get("completion_tokens") or estimate_tokens(content)

        logger.debug(
            f"Token usage - Input: {input_tokens}, Output: {output_tokens}, "
            f"latency {latency_ms:.0f}ms, reply '{shorten(content, 80)}'"
        )

        return Completion(
            text=content,
            input_tokens=int(input_tokens),
            output_tokens=int(output_tokens),
            latency_ms=latency_ms,
            model=completion_data.get("model") or self.model,
        )


def extract_content(completion_data: Dict[str, Any]) -> Optional[str]:
    """
    Pull assistant text out of a chat completions (or responses-style) payload.
    """
    if not isinstance(completion_data, dict):
        return None

    choices: List[Dict[str, Any]] = completion_data.get("choices") or []
    if choices:
        try:
            return choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            pass

    for item in completion_data.get("output") or []:
        if item.get("type") == "message" and item.get("role") == "assistant":
            for content_item in item.get("content", []):
                if content_item.get("type") == "output_text":
                    return content_item.get("text")

    return None
