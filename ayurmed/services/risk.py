"""Hereditary disease risk scoring from age, gender and family history."""

import json
import logging

from ayurmed.exceptions import ValidationInputError
from ayurmed.models.risk import FamilyHistoryItem, RiskPrediction
from ayurmed.services.llm import LLMClient, get_llm_client

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a clinical genetics assistant.

Given a patient profile (age, gender, family medical history), predict potential hereditary disease risks
based on Indian genetic patterns and general medical knowledge.

Rules:
- riskLevel: one of "LOW", "MEDIUM", "HIGH".
- score: overall risk score from 0 to 100.
- prediction: the main predicted condition or a one-sentence summary.
- factors: contributing factors taken from the history.
- recommendations: screening or lifestyle recommendations.

You must respond with ONLY a single JSON object that matches this schema. No markdown, no explanation, only the JSON."""


async def analyze_health_risk(
    age: int,
    gender: str,
    family_history: list[FamilyHistoryItem],
    client: LLMClient | None = None,
) -> RiskPrediction:
    if age is None or age <= 0:
        raise ValidationInputError("Patient age is missing.")

    profile = {
        "age": age,
        "gender": gender,
        "familyHistory": [item.model_dump(mode="json", by_alias=True) for item in family_history],
    }
    client = client or get_llm_client()
    prediction = await client.generate_json(
        system=SYSTEM_PROMPT,
        user=f"Analyze the health risks for this patient profile:\n{json.dumps(profile, indent=2)}",
        response_model=RiskPrediction,
    )
    logger.info("Risk analysis complete: %s (%d)", prediction.risk_level, prediction.score)
    return prediction
