from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any

import requests

from kb_api.config import OpenAISettings
from kb_api.errors import ExternalServiceError

logger = logging.getLogger("kb_api.assistant")

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class OpenAIChatClient:
    """Minimal client for the chat completions endpoint."""

    def __init__(self, settings: OpenAISettings) -> None:
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.api_key)

    def _post(self, system_prompt: str, user_prompt: str) -> requests.Response:
        return requests.post(
            f"{self.settings.base_url.rstrip('/')}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.settings.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": self.settings.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": self.settings.temperature,
                "max_tokens": self.settings.max_tokens,
            },
            timeout=self.settings.timeout_sec,
        )

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the assistant message text.

        Raises:
            ExternalServiceError: On transport failure or a non-2xx reply.
        """
        try:
            resp = await asyncio.to_thread(self._post, system_prompt, user_prompt)
        except requests.RequestException as e:
            logger.error("OpenAI request failed: %s", e)
            raise ExternalServiceError(detail=f"OpenAI request failed: {e}") from e

        if not resp.ok:
            logger.error("OpenAI API error: %s %s", resp.status_code, resp.text[:500])
            raise ExternalServiceError(
                detail=f"OpenAI API error: {resp.status_code}",
                upstream_status=resp.status_code,
            )

        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(detail="Malformed OpenAI response") from e


def parse_reply(text: str) -> dict[str, Any]:
    """Decode the model's JSON answer, tolerating a surrounding code fence."""
    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        parsed = json.loads(candidate)
    except ValueError:
        logger.warning("Failed to parse AI response as JSON")
        return {"response": text, "error": "Failed to parse AI response as JSON"}
    if not isinstance(parsed, dict):
        return {"response": parsed}
    return parsed
