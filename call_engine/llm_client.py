"""
LLM Provider Client
===================
Thin request/response wrapper around the provider SDKs.

The pipeline stages only ever see ``call(prompt, max_tokens) -> str`` and
``parse_json_response``; empty or non-JSON output is raised as
``LLMResponseError`` exactly like a transport failure.
"""

import json
import logging
from typing import Any, Dict, Optional

from anthropic import Anthropic
from openai import OpenAI

from .config.settings import LLM_CONFIG, MODEL_CATALOG
from .exceptions import LLMResponseError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = tuple(MODEL_CATALOG.keys())

SYSTEM_PROMPT = "You are a sales call analyst. Always respond with valid JSON only."


def resolve_model(provider: str, tier: str) -> str:
    """Look up the model id for a provider and tier ("extraction" or "analysis")"""
    if provider not in MODEL_CATALOG:
        raise ValueError(f"Unknown provider: {provider}")
    return MODEL_CATALOG[provider][tier]


class LLMClient:
    """
    Request/response client for one provider and model.
    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: Optional[str] = None,
        tier: str = "extraction",
    ):
        """
        Initialize the provider SDK client.

        Args:
            provider: "claude", "openai" or "openrouter"
            api_key: Credential for the provider, supplied per request
            model: Explicit model id (defaults to the catalog entry for ``tier``)
            tier: Model tier used when ``model`` is not given
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unknown provider: {provider}")

        self.provider = provider
        self.model = model or resolve_model(provider, tier)
        self.temperature = LLM_CONFIG.get("temperature", 0.2)
        max_retries = LLM_CONFIG.get("max_retries", 2)

        if provider == "claude":
            self.client = Anthropic(api_key=api_key, max_retries=max_retries)
        elif provider == "openrouter":
            self.client = OpenAI(
                api_key=api_key,
                base_url=LLM_CONFIG["base_url"],
                max_retries=max_retries,
                default_headers={
                    "HTTP-Referer": LLM_CONFIG["site_url"],
                    "X-Title": LLM_CONFIG["app_name"],
                },
            )
        else:
            self.client = OpenAI(api_key=api_key, max_retries=max_retries)

    def call(self, prompt: str, max_tokens: int) -> str:
        """Send one prompt and return the raw JSON text"""
        if self.provider == "claude":
            # Prefill the opening brace so the reply starts as a JSON object
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "user", "content": prompt},
                    {"role": "assistant", "content": "{"},
                ],
            )
            if not response.content or response.content[0].type != "text":
                raise LLMResponseError("Unexpected response type from Claude")
            text = "{" + response.content[0].text
        else:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
            text = response.choices[0].message.content if response.choices else None

        if not text or not text.strip():
            raise LLMResponseError(f"Empty response from {self.provider}")
        return text


def parse_json_response(response: Optional[str]) -> Dict[str, Any]:
    """Parse an LLM reply into a JSON object, tolerating markdown fences"""
    if not response or not response.strip():
        raise LLMResponseError("Empty response from model")

    clean = response.strip()
    if clean.startswith("```"):
        clean = clean.split("```")[1]
        if clean.startswith("json"):
            clean = clean[4:]
    clean = clean.strip()

    try:
        data = json.loads(clean)
    except json.JSONDecodeError as e:
        raise LLMResponseError("Model returned invalid JSON", details=str(e)[:200])

    if not isinstance(data, dict):
        raise LLMResponseError("Model returned JSON that is not an object")
    return data
