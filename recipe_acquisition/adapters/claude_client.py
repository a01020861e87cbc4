"""
Claude API Client for the AI fallback and kid-friendly conversion layers.
Provides an async interface with a capability flag and a hard timeout.

DESIGN PRINCIPLES:
- Callers check is_available() before relying on the model
- Every call is bounded by a timeout; timeouts are never retried here
- Output is returned as raw text; parsing belongs to the caller
"""
import asyncio
from typing import Optional

import anthropic

from recipe_acquisition.config import config
from recipe_acquisition.errors import AIUnavailableError, ModelResponseError, ModelTimeoutError
from recipe_acquisition.utils.logger import LayerLogger


class ClaudeClient:
    """
    Claude API client for recipe extraction and conversion.

    Uses the async SDK so asyncio.wait_for can enforce the deadline.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.logger = LayerLogger("claude_client")
        self.model = model or config.AI_MODEL
        key = api_key if api_key is not None else config.ANTHROPIC_API_KEY

        if not key or not config.AI_FALLBACK_ENABLED:
            self.logger.log_decision(
                decision="ai_disabled",
                reason="no API key configured" if not key else "AI_FALLBACK_ENABLED is false",
            )
            self.client = None
        else:
            self.client = anthropic.AsyncAnthropic(api_key=key)
            self.logger.log_action("init", "completed", model=self.model)

    def is_available(self) -> bool:
        """Check if Claude client is properly configured."""
        return self.client is not None

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.1,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send one user prompt and return the text of the reply.

        Raises AIUnavailableError when unconfigured, ModelTimeoutError when
        the deadline passes, ModelResponseError on an API failure or an
        empty reply.
        """
        if not self.client:
            raise AIUnavailableError("AI extraction is not available (no API key configured)")

        timeout = config.AI_TIMEOUT_SECONDS if timeout is None else timeout
        max_tokens = max_tokens or config.AI_MAX_TOKENS
        self.logger.log_action("complete", "started", prompt_length=len(prompt), max_tokens=max_tokens)

        request = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        try:
            response = await asyncio.wait_for(self.client.messages.create(**request), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.log_error(f"Claude request exceeded {timeout}s", error_type="timeout")
            raise ModelTimeoutError(f"AI extraction timed out after {timeout:g} seconds")
        except anthropic.APIError as e:
            self.logger.log_error(f"Claude API error: {str(e)}", error_type="api_error")
            raise ModelResponseError(f"AI service error: {str(e)}")

        if not response.content or not getattr(response.content[0], "text", None):
            raise ModelResponseError("AI service returned an empty response")

        text = response.content[0].text
        self.logger.log_action(
            "complete",
            "success",
            response_length=len(text),
            tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return text
