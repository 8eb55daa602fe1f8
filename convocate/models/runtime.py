"""
Convocate - Ollama Runtime Interface
Chat completions (free text or schema-constrained JSON) via Ollama.
"""

import logging
import threading
import time
import requests
from typing import Dict, Any, Optional, List
from dataclasses import dataclass

from ..config import OllamaConfig

logger = logging.getLogger(__name__)

# Substrings that identify an exhausted upstream quota or billing limit.
QUOTA_KEYWORDS = (
    "quota_exceeded",
    "insufficient_quota",
    "rate_limit_exceeded",
    "billing_hard_limit_reached",
    "monthly_limit_exceeded",
    "usage_limit_reached",
    "credit_limit_exceeded",
)


class ModelError(RuntimeError):
    """The model endpoint failed to produce a completion."""


class ModelTimeoutError(ModelError):
    """The model endpoint did not answer within the configured timeout."""


class ModelQuotaError(ModelError):
    """The model endpoint refused the call because a usage limit was reached."""


def is_quota_message(text: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in QUOTA_KEYWORDS)


@dataclass
class GenerationResult:
    """Result from a generation request."""
    text: str
    tokens: int                    # Output tokens
    duration_ms: float
    model: str
    prompt_tokens: int = 0         # Input/prompt tokens
    total_tokens: int = 0          # Total tokens used


class OllamaRuntime:
    """
    Interface to Ollama for inference.

    Handles:
    - Chat completions, optionally constrained to a JSON schema
    - Bounded timeouts and retries for transient failures
    - A process-wide cap on concurrent calls
    - Health checks
    """

    def __init__(self, config: OllamaConfig):
        """
        Initialize Ollama runtime.

        Args:
            config: Ollama configuration.
        """
        self.base_url = config.base_url.rstrip('/')
        self.timeout = config.timeout
        self.retry_attempts = max(1, config.retry_attempts)
        self.retry_delay = config.retry_delay
        self._slots = threading.BoundedSemaphore(max(1, config.max_concurrent_calls))

    def check_health(self) -> bool:
        """Check if Ollama is running and accessible."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def generate(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 300,
        temperature: float = 0.7,
        schema: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        """
        Generate a completion from a single prompt.

        Args:
            model: Model name.
            prompt: User prompt.
            system: Optional system prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            schema: Optional JSON schema the output must follow.

        Returns:
            GenerationResult with the response.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return self.chat(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            schema=schema
        )

    def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 300,
        temperature: float = 0.7,
        schema: Optional[Dict[str, Any]] = None
    ) -> GenerationResult:
        """
        Send a chat completion request.

        Args:
            model: Model name.
            messages: List of message dicts with 'role' and 'content'.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            schema: Optional JSON schema passed as Ollama's structured output format.

        Returns:
            GenerationResult with the response.

        Raises:
            ModelQuotaError: the endpoint reported an exhausted quota (not retried).
            ModelTimeoutError: every attempt timed out.
            ModelError: any other failure after all attempts.
        """
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "num_predict": max_tokens,
                "temperature": temperature
            }
        }

        if schema is not None:
            payload["format"] = schema

        last_error = None
        timed_out = False
        with self._slots:
            for attempt in range(self.retry_attempts):
                try:
                    start_time = time.time()
                    response = requests.post(
                        f"{self.base_url}/api/chat",
                        json=payload,
                        timeout=self.timeout
                    )
                    duration_ms = (time.time() - start_time) * 1000

                    if response.status_code == 200:
                        data = response.json()
                        message = data.get("message") if isinstance(data, dict) else None
                        if not isinstance(message, dict):
                            raise ValueError("expected an object with a 'message' object")
                        content = message.get("content") or ""
                        if not isinstance(content, str):
                            raise ValueError("message content is not a string")
                        output_tokens = data.get("eval_count", 0)
                        prompt_tokens = data.get("prompt_eval_count", 0)

                        return GenerationResult(
                            text=content,
                            tokens=output_tokens,
                            duration_ms=duration_ms,
                            model=model,
                            prompt_tokens=prompt_tokens,
                            total_tokens=output_tokens + prompt_tokens
                        )

                    if response.status_code == 429 or is_quota_message(response.text):
                        raise ModelQuotaError(f"HTTP {response.status_code}: {response.text}")
                    last_error = f"HTTP {response.status_code}: {response.text}"
                    timed_out = False

                except requests.exceptions.Timeout:
                    last_error = "Request timeout"
                    timed_out = True
                except requests.exceptions.ConnectionError:
                    last_error = "Connection error - is Ollama running?"
                    timed_out = False
                except requests.exceptions.RequestException as e:
                    last_error = f"Request failed: {e}"
                    timed_out = False
                except ValueError as e:
                    last_error = f"Invalid response body: {e}"
                    timed_out = False

                logger.warning("Model call to %s failed (attempt %d/%d): %s",
                               model, attempt + 1, self.retry_attempts, last_error)
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay)

        if timed_out:
            raise ModelTimeoutError(f"Generation timed out after {self.retry_attempts} attempts")
        raise ModelError(f"Generation failed after {self.retry_attempts} attempts: {last_error}")
