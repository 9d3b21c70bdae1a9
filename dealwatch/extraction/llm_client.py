"""JSON-mode chat client for the extraction and adjudication collaborators."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import openai

from dealwatch.errors import CollaboratorError, ParseError
from dealwatch.reliability import RateLimiter

logger = logging.getLogger(__name__)


class BaseJSONModel:
    """Collaborator seam: anything that turns (system, user) prompts into a JSON object.

    Implementations raise `CollaboratorError` when the call fails and `ParseError` when
    the answer is not a JSON object. Tests substitute scripted implementations.
    """

    def complete_json(self, system_prompt: str, user_prompt: str, *, max_tokens: int = 1000) -> Dict[str, Any]:
        raise NotImplementedError


class OpenAIJSONModel(BaseJSONModel):
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        temperature: float = 0.1,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.model = model
        self.temperature = temperature
        # The SDK retries connection errors on its own; keep that small so timeouts stay bounded.
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=1)
        self.rate_limiter = rate_limiter or RateLimiter(max_calls=60, time_window=60)

    def complete_json(self, system_prompt: str, user_prompt: str, *, max_tokens: int = 1000) -> Dict[str, Any]:
        self.rate_limiter.wait_if_needed()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            raise CollaboratorError(f"{self.model} request timed out") from e
        except openai.OpenAIError as e:
            raise CollaboratorError(f"{self.model} request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ParseError(f"{self.model} returned an empty message")

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(f"OpenAI usage - Prompt: {usage.prompt_tokens}, Completion: {usage.completion_tokens}")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"Non-JSON model output: {content[:300]}...")
            raise ParseError(f"{self.model} response was not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(f"{self.model} response was {type(data).__name__}, expected an object")
        return data
