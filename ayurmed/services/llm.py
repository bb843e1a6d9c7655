import base64
import json
import logging
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ayurmed.config import (
    ANTHROPIC_API_KEY,
    LLM_DEFAULT_TIER,
    LLM_MODEL_FAST,
    LLM_MODEL_HIGH,
    LLM_MODEL_STANDARD,
    LLM_PROVIDER,
    OPENAI_API_KEY,
)
from ayurmed.exceptions import ConfigurationError, ExtractionError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


_ANTHROPIC_DEFAULTS = {
    "fast": "claude-3-5-haiku-latest",
    "standard": "claude-sonnet-4-5",
    "high": "claude-sonnet-4-5",
}

_OPENAI_DEFAULTS = {
    "fast": "gpt-4o-mini",
    "standard": "gpt-4o",
    "high": "gpt-4o",
}


def _strip_json(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start:end + 1]
    return text


class ImageInput(BaseModel):
    data: bytes
    media_type: str = "image/jpeg"

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class LLMClient:
    def __init__(self) -> None:
        provider = (LLM_PROVIDER or "auto").lower()
        if provider == "auto":
            if ANTHROPIC_API_KEY:
                provider = "anthropic"
            elif OPENAI_API_KEY:
                provider = "openai"
            else:
                provider = "none"
        self.provider = provider

        self._anthropic = AsyncAnthropic(api_key=ANTHROPIC_API_KEY) if ANTHROPIC_API_KEY else None
        self._openai = AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None

    def available(self) -> bool:
        if self.provider == "anthropic":
            return self._anthropic is not None
        if self.provider == "openai":
            return self._openai is not None
        return False

    def model_for_tier(self, tier: str | None) -> str:
        tier = (tier or LLM_DEFAULT_TIER or "fast").lower()
        if tier not in ("fast", "standard", "high"):
            tier = "standard"

        if tier == "fast" and LLM_MODEL_FAST:
            return LLM_MODEL_FAST
        if tier == "standard" and LLM_MODEL_STANDARD:
            return LLM_MODEL_STANDARD
        if tier == "high" and LLM_MODEL_HIGH:
            return LLM_MODEL_HIGH

        if self.provider == "anthropic":
            return _ANTHROPIC_DEFAULTS[tier]
        return _OPENAI_DEFAULTS[tier]

    async def _complete_anthropic(
        self, model: str, system: str, user: str, image: ImageInput | None, max_tokens: int
    ) -> str:
        content: list[dict] = []
        if image is not None:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": image.media_type, "data": image.b64()},
            })
        content.append({"type": "text", "text": user})

        message = await self._anthropic.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": content}],
        )
        raw = ""
        for block in message.content:
            if hasattr(block, "text"):
                raw += block.text
        return raw

    async def _complete_openai(
        self,
        model: str,
        system: str,
        user: str,
        image: ImageInput | None,
        max_tokens: int,
        schema_name: str,
        schema: dict,
    ) -> str:
        content: list[dict] = [{"type": "text", "text": user}]
        if image is not None:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image.media_type};base64,{image.b64()}"},
            })

        response = await self._openai.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema},
            },
        )
        return response.choices[0].message.content or ""

    async def generate_json(
        self,
        *,
        system: str,
        user: str,
        response_model: type[T],
        image: ImageInput | None = None,
        max_tokens: int = 2048,
        tier: str | None = None,
    ) -> T:
        """Ask the model for JSON matching ``response_model`` and validate it.

        Raises ConfigurationError when no provider is configured and
        ExtractionError when the call fails or the response does not match.
        """
        if not self.available():
            raise ConfigurationError("AI provider is not configured: set ANTHROPIC_API_KEY or OPENAI_API_KEY")

        model = self.model_for_tier(tier)
        schema = response_model.model_json_schema()
        schema_name = response_model.__name__

        try:
            if self.provider == "anthropic":
                raw = await self._complete_anthropic(
                    model,
                    system + "\nSchema:\n" + json.dumps(schema, indent=2),
                    user,
                    image,
                    max_tokens,
                )
            else:
                raw = await self._complete_openai(model, system, user, image, max_tokens, schema_name, schema)
        except Exception as e:
            logger.error("%s call to %s failed: %s", self.provider, model, e)
            raise ExtractionError(f"AI request failed: {e}") from e

        if not raw or not raw.strip():
            raise ExtractionError("No response from AI")

        logger.debug("%s response for %s: %s", self.provider, schema_name, raw[:200])
        try:
            return response_model.model_validate_json(_strip_json(raw))
        except ValidationError as e:
            logger.warning("AI response did not match %s: %s", schema_name, e.errors()[:3])
            raise ExtractionError(f"AI response did not match the {schema_name} schema") from e


_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
