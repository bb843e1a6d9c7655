"""Tests for the shared LLM client (ayurmed/services/llm.py)."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

from ayurmed.exceptions import ConfigurationError, ExtractionError
from ayurmed.services import llm


class SampleModel(BaseModel):
    value: str


def _anthropic_client(text: str | None = None, error: Exception | None = None) -> llm.LLMClient:
    client = llm.LLMClient()
    client.provider = "anthropic"
    mock = AsyncMock()
    if error is not None:
        mock.messages.create = AsyncMock(side_effect=error)
    else:
        block = MagicMock()
        block.text = text
        response = MagicMock()
        response.content = [block]
        mock.messages.create = AsyncMock(return_value=response)
    client._anthropic = mock
    return client


def _openai_client(text: str | None) -> llm.LLMClient:
    client = llm.LLMClient()
    client.provider = "openai"
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    mock = AsyncMock()
    mock.chat.completions.create = AsyncMock(return_value=response)
    client._openai = mock
    return client


class TestProviderDetection:
    """With no keys in the environment no provider is available."""

    def test_provider_is_none(self):
        assert llm.LLMClient().provider == "none"

    def test_not_available(self):
        assert llm.LLMClient().available() is False

    def test_default_models(self):
        client = llm.LLMClient()
        client.provider = "anthropic"
        assert client.model_for_tier("fast") == llm._ANTHROPIC_DEFAULTS["fast"]
        client.provider = "openai"
        assert client.model_for_tier("high") == llm._OPENAI_DEFAULTS["high"]

    def test_unknown_tier_uses_standard(self):
        client = llm.LLMClient()
        client.provider = "openai"
        assert client.model_for_tier("turbo") == llm._OPENAI_DEFAULTS["standard"]


class TestUnavailableGuard:
    async def test_generate_json_raises_configuration_error(self):
        with pytest.raises(ConfigurationError):
            await llm.LLMClient().generate_json(system="s", user="u", response_model=SampleModel)


class TestStripJson:
    def test_strips_json_fence(self):
        assert llm._strip_json('```json\n{"key": "value"}\n```') == '{"key": "value"}'

    def test_strips_plain_fence(self):
        assert llm._strip_json('```\n{"key": "value"}\n```') == '{"key": "value"}'

    def test_no_fence_unchanged(self):
        assert llm._strip_json('{"key": "value"}') == '{"key": "value"}'

    def test_trims_surrounding_prose(self):
        assert llm._strip_json('Here you go: {"key": 1} hope it helps') == '{"key": 1}'


class TestAnthropicPath:
    async def test_parses_fenced_response(self):
        client = _anthropic_client('```json\n{"value": "from_claude"}\n```')
        result = await client.generate_json(system="Extract data.", user="test", response_model=SampleModel)
        assert result.value == "from_claude"

    async def test_sends_image_block_and_schema(self):
        client = _anthropic_client('{"value": "x"}')
        image = llm.ImageInput(data=b"\x89PNG", media_type="image/png")
        await client.generate_json(system="Read it.", user="test", response_model=SampleModel, image=image)

        kwargs = client._anthropic.messages.create.call_args.kwargs
        assert "Read it." in kwargs["system"]
        assert '"value"' in kwargs["system"]
        content = kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/png"
        assert content[0]["source"]["data"] == image.b64()
        assert content[1] == {"type": "text", "text": "test"}

    async def test_schema_mismatch_raises(self):
        client = _anthropic_client('{"other": 1}')
        with pytest.raises(ExtractionError):
            await client.generate_json(system="s", user="u", response_model=SampleModel)

    async def test_invalid_json_raises(self):
        client = _anthropic_client("not valid json")
        with pytest.raises(ExtractionError):
            await client.generate_json(system="s", user="u", response_model=SampleModel)

    async def test_empty_response_raises(self):
        client = _anthropic_client("   ")
        with pytest.raises(ExtractionError, match="No response"):
            await client.generate_json(system="s", user="u", response_model=SampleModel)

    async def test_network_error_raises(self):
        client = _anthropic_client(error=ConnectionError("boom"))
        with pytest.raises(ExtractionError, match="AI request failed"):
            await client.generate_json(system="s", user="u", response_model=SampleModel)


class TestOpenAIPath:
    async def test_uses_json_schema_response_format(self):
        client = _openai_client('{"value": "from_openai"}')
        result = await client.generate_json(system="s", user="u", response_model=SampleModel)

        assert result.value == "from_openai"
        rf = client._openai.chat.completions.create.call_args.kwargs["response_format"]
        assert rf["type"] == "json_schema"
        assert rf["json_schema"]["name"] == "SampleModel"
        assert rf["json_schema"]["schema"]["properties"]["value"]["type"] == "string"

    async def test_image_sent_as_data_url(self):
        client = _openai_client('{"value": "x"}')
        image = llm.ImageInput(data=b"abc", media_type="image/jpeg")
        await client.generate_json(system="s", user="u", response_model=SampleModel, image=image)

        messages = client._openai.chat.completions.create.call_args.kwargs["messages"]
        parts = messages[1]["content"]
        assert parts[1]["image_url"]["url"] == "data:image/jpeg;base64,YWJj"

    async def test_none_content_raises(self):
        client = _openai_client(None)
        with pytest.raises(ExtractionError):
            await client.generate_json(system="s", user="u", response_model=SampleModel)
