"""Generative model clients with bounded retry on rate limiting.

Only throttling (HTTP 429) is retried, with exponential backoff; any other
error from the provider fails the call immediately.
"""

from __future__ import annotations

from typing import Callable, Optional
import time

from pydantic import BaseModel

from services.errors import DeadlineExceeded, MalformedResponse, RateLimited, UpstreamError


class ModelConfig(BaseModel):
    model: str
    temperature: float = 0.7
    max_tokens: int = 1000
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    timeout_seconds: float = 30.0


class GenerativeClient:
    """Base client: subclasses implement ``_send`` for one provider request.

    ``_send`` raises RateLimited on a 429 and UpstreamError on anything else
    that is not a success; ``complete`` owns the retry loop.
    """

    provider = "generic"

    def __init__(self, config: ModelConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._sleep = sleep

    def _send(self, prompt: str, timeout: float) -> Optional[str]:
        raise NotImplementedError

    def complete(self, prompt: str, deadline: Optional[float] = None) -> str:
        """Send ``prompt`` and return the model's text.

        ``deadline`` is an absolute ``time.monotonic()`` value. No attempt
        starts and no backoff sleep begins once it cannot be met; each attempt
        gets at most the time left as its request timeout.
        """
        max_attempts = max(1, self.config.max_retries)
        delay = self.config.backoff_base_seconds
        for attempt in range(1, max_attempts + 1):
            timeout = self.config.timeout_seconds
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise DeadlineExceeded(f"{self.provider} call skipped: request deadline reached")
                timeout = min(timeout, remaining)
            try:
                text = self._send(prompt, timeout)
            except RateLimited:
                if attempt >= max_attempts:
                    print(f"❌ {self.provider} still rate limited after {attempt} attempts")
                    raise RateLimited("Rate limit exceeded. Please try again later.")
                if deadline is not None and deadline - time.monotonic() <= delay:
                    print(f"❌ {self.provider} rate limited; no time left to back off {delay:.1f}s")
                    raise DeadlineExceeded(f"{self.provider} rate limited and the request deadline leaves no time to retry")
                print(f"⚠️ {self.provider} rate limit hit on attempt {attempt}. Retrying in {delay:.1f}s...")
                self._sleep(delay)
                delay *= 2
                continue
            if not text or not text.strip():
                raise MalformedResponse(f"{self.provider} response is empty or malformed.")
            return text.strip()
        # max_attempts >= 1, so the loop always returns or raises
        raise RateLimited("Rate limit exceeded. Please try again later.")


class OpenAIClient(GenerativeClient):
    provider = "OpenAI"

    def __init__(self, api_key: str, config: ModelConfig, sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, sleep)
        from openai import OpenAI

        # SDK retries off: the backoff loop above decides what is retried
        self.client = OpenAI(api_key=api_key, max_retries=0, timeout=config.timeout_seconds)

    def _send(self, prompt: str, timeout: float) -> Optional[str]:
        import openai

        try:
            resp = self.client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                timeout=timeout,
            )
        except openai.RateLimitError as e:
            raise RateLimited(f"OpenAI API error: 429 {e}") from e
        except openai.APIStatusError as e:
            print(f"❌ OpenAI API error: {e.status_code} — {e}")
            raise UpstreamError(f"OpenAI API error: {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise UpstreamError(f"OpenAI API unreachable: {type(e).__name__}") from e
        if not resp.choices:
            return None
        return resp.choices[0].message.content


class GeminiClient(GenerativeClient):
    provider = "Gemini"

    def __init__(self, api_key: str, config: ModelConfig, sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, sleep)
        from google import genai

        self.client = genai.Client(api_key=api_key)

    def _send(self, prompt: str, timeout: float) -> Optional[str]:
        from google.genai import errors, types

        try:
            resp = self.client.models.generate_content(
                model=self.config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=self.config.temperature,
                    max_output_tokens=self.config.max_tokens,
                    candidate_count=1,
                    http_options=types.HttpOptions(timeout=int(timeout * 1000)),
                ),
            )
        except errors.APIError as e:
            if e.code == 429:
                raise RateLimited(f"Gemini API error: 429 {e.message}") from e
            print(f"❌ Gemini API error: {e.code} — {e.message}")
            raise UpstreamError(f"Gemini API error: {e.code}") from e
        except Exception as e:
            raise UpstreamError(f"Gemini API unreachable: {type(e).__name__}") from e
        return resp.text
