"""Tests for prescription image extraction and risk scoring clients."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from ayurmed.exceptions import ConfigurationError, ExtractionError, ValidationInputError
from ayurmed.models.risk import FamilyHistoryItem, Relation
from ayurmed.services import extraction, risk
from ayurmed.services.llm import LLMClient


def _client_returning(raw: str) -> LLMClient:
    client = LLMClient()
    client.provider = "anthropic"
    client._anthropic = object()
    client._complete_anthropic = AsyncMock(return_value=raw)
    return client


EXTRACTION_JSON = json.dumps({
    "medicines": [
        {
            "name": "Amoxicillin",
            "dosage": "500mg",
            "frequency": "1-0-1",
            "duration": "5 days",
            "instructions": "After food",
        }
    ],
    "diagnosis": "Acute Bronchitis",
    "notes": "Review after a week",
})


class TestDecodeDataUrl:
    def test_png(self, png_data_url):
        image = extraction.decode_data_url(png_data_url)
        assert image.media_type == "image/png"
        assert image.data.startswith(b"\x89PNG")

    def test_missing_media_type_defaults_to_jpeg(self):
        image = extraction.decode_data_url("data:;base64,YWJj")
        assert image.media_type == "image/jpeg"
        assert image.data == b"abc"

    def test_not_a_data_url(self):
        with pytest.raises(ValidationInputError):
            extraction.decode_data_url("https://picsum.photos/400/600")

    def test_bad_base64(self):
        with pytest.raises(ValidationInputError):
            extraction.decode_data_url("data:image/png;base64,@@@@")

    def test_is_embedded_image(self, png_data_url):
        assert extraction.is_embedded_image(png_data_url)
        assert not extraction.is_embedded_image("https://picsum.photos/400/600")
        assert not extraction.is_embedded_image(None)


class TestParsePrescriptionImage:
    async def test_parses_response(self):
        client = _client_returning(EXTRACTION_JSON)
        result = await extraction.parse_prescription_image(b"img", "image/png", client=client)
        assert result.diagnosis == "Acute Bronchitis"
        assert result.medicines[0].frequency == "1-0-1"

        image = client._complete_anthropic.call_args.args[3]
        assert image.media_type == "image/png"
        assert image.data == b"img"

    async def test_parses_fenced_response(self):
        client = _client_returning(f"```json\n{EXTRACTION_JSON}\n```")
        result = await extraction.parse_prescription_image(b"img", client=client)
        assert result.notes == "Review after a week"

    async def test_empty_fields_are_strings(self):
        raw = json.dumps({"medicines": [], "diagnosis": "", "notes": ""})
        result = await extraction.parse_prescription_image(b"img", client=_client_returning(raw))
        assert result.medicines == []
        assert result.diagnosis == ""

    async def test_rejects_medicine_missing_field(self):
        raw = json.dumps({
            "medicines": [{"name": "Amoxicillin", "dosage": "500mg", "frequency": "1-0-1", "duration": "5 days"}],
            "diagnosis": "",
            "notes": "",
        })
        with pytest.raises(ExtractionError):
            await extraction.parse_prescription_image(b"img", client=_client_returning(raw))

    async def test_rejects_null_field(self):
        raw = json.dumps({"medicines": [], "diagnosis": None, "notes": ""})
        with pytest.raises(ExtractionError):
            await extraction.parse_prescription_image(b"img", client=_client_returning(raw))

    async def test_rejects_non_string_field(self):
        raw = json.dumps({
            "medicines": [{"name": "X", "dosage": 500, "frequency": "", "duration": "", "instructions": ""}],
            "diagnosis": "",
            "notes": "",
        })
        with pytest.raises(ExtractionError):
            await extraction.parse_prescription_image(b"img", client=_client_returning(raw))

    async def test_rejects_extra_medicine_field(self):
        raw = json.dumps({
            "medicines": [{
                "name": "X", "dosage": "", "frequency": "", "duration": "", "instructions": "", "route": "oral",
            }],
            "diagnosis": "",
            "notes": "",
        })
        with pytest.raises(ExtractionError):
            await extraction.parse_prescription_image(b"img", client=_client_returning(raw))

    async def test_no_image_bytes(self):
        with pytest.raises(ExtractionError):
            await extraction.parse_prescription_image(b"", client=_client_returning(EXTRACTION_JSON))

    async def test_unconfigured_provider(self):
        with pytest.raises(ConfigurationError):
            await extraction.parse_prescription_image(b"img", client=LLMClient())


RISK_JSON = {
    "riskLevel": "MEDIUM",
    "score": 55,
    "prediction": "Elevated risk of Type 2 Diabetes",
    "factors": ["Father diagnosed at 45"],
    "recommendations": ["Annual HbA1c screening"],
}

HISTORY = [FamilyHistoryItem(relation=Relation.FATHER, condition="Diabetes Type 2", age_of_onset="45")]


class TestAnalyzeHealthRisk:
    async def test_parses_response(self):
        client = _client_returning(json.dumps(RISK_JSON))
        result = await risk.analyze_health_risk(45, "Male", HISTORY, client=client)
        assert result.risk_level == "MEDIUM"
        assert result.score == 55
        assert result.factors == ["Father diagnosed at 45"]

        user_prompt = client._complete_anthropic.call_args.args[2]
        assert '"age": 45' in user_prompt
        assert '"relation": "Father"' in user_prompt
        assert '"ageOfOnset": "45"' in user_prompt
        assert '"riskLevel"' in client._complete_anthropic.call_args.args[1]

    async def test_fractional_score_rounded(self):
        client = _client_returning(json.dumps({**RISK_JSON, "score": 72.6}))
        result = await risk.analyze_health_risk(45, "Male", HISTORY, client=client)
        assert result.score == 73

    async def test_empty_lists_allowed(self):
        client = _client_returning(json.dumps({**RISK_JSON, "factors": [], "recommendations": []}))
        result = await risk.analyze_health_risk(30, "Female", [], client=client)
        assert result.factors == []

    @pytest.mark.parametrize("score", [-1, 101, 150.5])
    async def test_rejects_out_of_range_score(self, score):
        client = _client_returning(json.dumps({**RISK_JSON, "score": score}))
        with pytest.raises(ExtractionError):
            await risk.analyze_health_risk(45, "Male", HISTORY, client=client)

    @pytest.mark.parametrize("score", ["75", True])
    async def test_rejects_non_numeric_score(self, score):
        client = _client_returning(json.dumps({**RISK_JSON, "score": score}))
        with pytest.raises(ExtractionError):
            await risk.analyze_health_risk(45, "Male", HISTORY, client=client)

    async def test_snake_case_response_accepted(self):
        payload = {**RISK_JSON, "risk_level": RISK_JSON["riskLevel"]}
        del payload["riskLevel"]
        client = _client_returning(json.dumps(payload))
        result = await risk.analyze_health_risk(45, "Male", HISTORY, client=client)
        assert result.risk_level == "MEDIUM"

    async def test_rejects_unknown_risk_level(self):
        client = _client_returning(json.dumps({**RISK_JSON, "riskLevel": "SEVERE"}))
        with pytest.raises(ExtractionError):
            await risk.analyze_health_risk(45, "Male", HISTORY, client=client)

    async def test_missing_age(self):
        client = _client_returning(json.dumps(RISK_JSON))
        with pytest.raises(ValidationInputError, match="age is missing"):
            await risk.analyze_health_risk(None, "Male", HISTORY, client=client)
        client._complete_anthropic.assert_not_called()

    async def test_uses_shared_client_by_default(self):
        client = _client_returning(json.dumps(RISK_JSON))
        with patch.object(risk, "get_llm_client", return_value=client):
            result = await risk.analyze_health_risk(45, "Male", HISTORY)
        assert result.risk_level == "MEDIUM"
