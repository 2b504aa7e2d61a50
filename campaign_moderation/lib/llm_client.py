"""
Policy classifier provider clients.
Providers return the raw decoded JSON object and raise CollaboratorFailure
on any transport or decoding problem; validation happens in the adapter.
"""
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from campaign_moderation.lib.errors import CollaboratorFailure, MalformedResponse

logger = logging.getLogger(__name__)


class ClassifierProvider:
    """Interface: classify(prompt_payload) -> decoded JSON object."""

    name = "provider"

    async def classify(self, prompt_payload: Dict[str, Any]) -> Any:
        raise NotImplementedError


class OpenAIChatProvider(ClassifierProvider):
    """OpenAI-compatible chat completions endpoint in JSON mode."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise CollaboratorFailure(self.name, "API key not configured")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def classify(self, prompt_payload: Dict[str, Any]) -> Any:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt_payload["instructions"]},
                {"role": "user", "content": json.dumps(prompt_payload["input"], indent=2, default=str)},
            ],
            "temperature": 0.1,
            "max_tokens": 1000,
            "response_format": {"type": "json_object"},
        }

        logger.debug(f"Classifier request: model={self.model} prompt={prompt_payload.get('version')}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
        except httpx.HTTPError as e:
            raise CollaboratorFailure(self.name, f"request failed: {e!r}") from e

        if response.status_code != 200:
            raise CollaboratorFailure(self.name, f"HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(self.name, f"unexpected response envelope: {e!r}") from e

        if not content:
            raise MalformedResponse(self.name, "empty completion")

        return parse_json_content(self.name, content)


def parse_json_content(provider: str, content: str) -> Any:
    """Decode a JSON completion, tolerating a surrounding markdown fence."""
    content = content.strip()
    if content.startswith("```"):
        content = re.sub(r'^```(?:json)?\n?', '', content)
        content = re.sub(r'\n?```$', '', content)

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponse(provider, f"invalid JSON: {e}") from e
